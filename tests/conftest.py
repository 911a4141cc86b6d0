import json

import pytest
from fastapi.testclient import TestClient
from nacl.encoding import HexEncoder
from nacl.signing import SigningKey

from core.config import Settings
from core.errors import DiscordAPIError
from core.storage import JsonDocument
from crud.community_settings_store import CommunitySettingsStore
from crud.verification_store import VerificationStore
from main import create_app
from schemas.identity_schema import Identity, Role

EXPIRATION_MS = 300000


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeIdentityProvider:
    def __init__(self, identity: Identity | None = None) -> None:
        self.identity = identity or Identity(id="42", username="alice")
        self.exchange_error: Exception | None = None
        self.identity_error: Exception | None = None
        self.codes: list[str] = []

    def exchange_code(self, code: str) -> str:
        self.codes.append(code)
        if self.exchange_error:
            raise self.exchange_error
        return f"token-for-{code}"

    def fetch_identity(self, access_token: str) -> Identity:
        if self.identity_error:
            raise self.identity_error
        return self.identity


class FakeChat:
    def __init__(self) -> None:
        self.roles: dict[tuple[str, str], Role] = {}
        self.guild_names: dict[str, str] = {}
        self.grants: list[tuple[str, str, str]] = []
        self.messages: list[tuple[str, str]] = []
        self.grant_error: DiscordAPIError | None = None
        self.dm_error: DiscordAPIError | None = None

    def add_role(self, guild_id: str, role_id: str, name: str = "Verified") -> None:
        self.roles[(guild_id, role_id)] = Role(id=role_id, name=name)

    def lookup_role(self, guild_id: str, role_id: str) -> Role | None:
        return self.roles.get((guild_id, role_id))

    def grant_role(self, user_id: str, guild_id: str, role_id: str) -> None:
        if self.grant_error:
            raise self.grant_error
        self.grants.append((user_id, guild_id, role_id))

    def send_direct_message(self, user_id: str, text: str) -> None:
        if self.dm_error:
            raise self.dm_error
        self.messages.append((user_id, text))

    def get_guild_name(self, guild_id: str) -> str | None:
        return self.guild_names.get(guild_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sessions_path(tmp_path):
    return str(tmp_path / "verified.json")


@pytest.fixture
def settings_path(tmp_path):
    return str(tmp_path / "guild-settings.json")


@pytest.fixture
def sessions(sessions_path, clock) -> VerificationStore:
    store = VerificationStore(JsonDocument(sessions_path), expiration_ms=EXPIRATION_MS, clock=clock)
    store.load()
    return store


@pytest.fixture
def community_settings(settings_path) -> CommunitySettingsStore:
    store = CommunitySettingsStore(JsonDocument(settings_path))
    store.load()
    return store


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def chat() -> FakeChat:
    fake = FakeChat()
    fake.guild_names["7"] = "Test Guild"
    return fake


@pytest.fixture
def signing_key() -> SigningKey:
    return SigningKey.generate()


@pytest.fixture
def app_settings(tmp_path, signing_key) -> Settings:
    return Settings(
        DISCORD_TOKEN="bot-token",
        CLIENT_ID="client-id",
        CLIENT_SECRET="client-secret",
        DISCORD_PUBLIC_KEY=signing_key.verify_key.encode(encoder=HexEncoder).decode(),
        REDIRECT_URI="https://verify.example.com/callback",
        BASE_URL="https://verify.example.com",
        DATA_DIR=str(tmp_path),
        REGISTER_COMMANDS=False,
    )


@pytest.fixture
def client(app_settings, sessions, community_settings, identity_provider, chat):
    app = create_app(
        app_settings,
        sessions=sessions,
        community_settings=community_settings,
        identity_provider=identity_provider,
        chat=chat,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def signed_post(client, signing_key):
    """POST a payload to /interactions with a valid Discord signature."""

    def _post(payload: dict):
        body = json.dumps(payload).encode()
        timestamp = "1700000000"
        signature = signing_key.sign(timestamp.encode() + body).signature.hex()
        return client.post(
            "/interactions",
            content=body,
            headers={
                "X-Signature-Ed25519": signature,
                "X-Signature-Timestamp": timestamp,
                "Content-Type": "application/json",
            },
        )

    return _post
