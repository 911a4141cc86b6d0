import logging
from typing import Protocol

from core.errors import (
    BadRequestError,
    DiscordAPIError,
    IdentityMismatchError,
    NotConfiguredError,
    RejectionReason,
    RoleGrantError,
    SessionRejectedError,
)
from crud.community_settings_store import CommunitySettingsStore
from crud.verification_store import VerificationStore
from schemas.identity_schema import Identity, Role, VerifiedMember

logger = logging.getLogger(__name__)

STATE_DELIMITER = ":"

SUCCESS_MESSAGE = (
    "Hello {username}!\n\n"
    "You are now a verified member of **{servername}**.\n\n"
    "You can now access all channels and start chatting. Welcome to the community!"
)


class IdentityProvider(Protocol):
    def exchange_code(self, code: str) -> str: ...

    def fetch_identity(self, access_token: str) -> Identity: ...


class ChatPlatform(Protocol):
    def lookup_role(self, guild_id: str, role_id: str) -> Role | None: ...

    def grant_role(self, user_id: str, guild_id: str, role_id: str) -> None: ...

    def send_direct_message(self, user_id: str, text: str) -> None: ...

    def get_guild_name(self, guild_id: str) -> str | None: ...


def compose_state(subject_id: str, community_id: str, secret: str) -> str:
    return STATE_DELIMITER.join((subject_id, community_id, secret))


def parse_composite_state(state: str) -> tuple[str, str, str]:
    """Split ``user:guild:secret``; anything but three non-empty fields is a BadRequestError."""
    parts = state.split(STATE_DELIMITER)
    if len(parts) != 3 or not all(parts):
        raise BadRequestError(f"malformed state with {len(parts)} field(s)")
    subject_id, community_id, secret = parts
    return subject_id, community_id, secret


class RedemptionOrchestrator:
    """Completes a verification attempt. Nothing here is retried.

    The session is consumed before any outbound call, so no store lock is
    held while waiting on Discord.
    """

    def __init__(
        self,
        sessions: VerificationStore,
        community_settings: CommunitySettingsStore,
        identity_provider: IdentityProvider,
        chat: ChatPlatform,
    ) -> None:
        self._sessions = sessions
        self._community_settings = community_settings
        self._identity_provider = identity_provider
        self._chat = chat

    def complete(self, code: str, state: str) -> VerifiedMember:
        subject_id, community_id, token = parse_composite_state(state)
        logger.info("Processing OAuth2 callback for user %s in guild %s", subject_id, community_id)

        session_community = self._sessions.redeem(subject_id, token)
        if session_community != community_id:
            logger.warning(
                "Guild mismatch for user %s: session is for %s, callback named %s",
                subject_id,
                session_community,
                community_id,
            )
            raise SessionRejectedError(RejectionReason.COMMUNITY_MISMATCH, subject_id)

        access_token = self._identity_provider.exchange_code(code)
        identity = self._identity_provider.fetch_identity(access_token)
        if identity.id != subject_id:
            logger.error(
                "User ID mismatch: expected %s, got %s - possible forged callback",
                subject_id,
                identity.id,
            )
            raise IdentityMismatchError(f"expected {subject_id}, got {identity.id}")
        logger.info("User %s authenticated successfully", identity.username)

        role_id = self._grant(subject_id, community_id)
        self._notify(identity, community_id)
        return VerifiedMember(
            user_id=subject_id,
            username=identity.username,
            community_id=community_id,
            role_id=role_id,
        )

    def _grant(self, subject_id: str, community_id: str) -> str:
        settings = self._community_settings.get(community_id)
        if not settings.role_id:
            logger.error("No role configured for guild %s", community_id)
            raise NotConfiguredError(f"guild {community_id} has no role")

        try:
            role = self._chat.lookup_role(community_id, settings.role_id)
        except DiscordAPIError as exc:
            logger.error("Could not look up roles in guild %s: %s", community_id, exc)
            raise RoleGrantError(str(exc)) from exc
        if role is None:
            logger.error("Verified role %s not found in guild %s", settings.role_id, community_id)
            raise NotConfiguredError(f"role {settings.role_id} missing in guild {community_id}")

        try:
            self._chat.grant_role(subject_id, community_id, role.id)
        except DiscordAPIError as exc:
            logger.error("Failed to assign role %s to user %s: %s", role.id, subject_id, exc)
            raise RoleGrantError(str(exc)) from exc
        logger.info("Assigned role %s to user %s in guild %s", role.name, subject_id, community_id)
        return role.id

    def _notify(self, identity: Identity, community_id: str) -> None:
        server_name = self._chat.get_guild_name(community_id) or "Server"
        text = SUCCESS_MESSAGE.format(username=identity.username or "User", servername=server_name)
        try:
            self._chat.send_direct_message(identity.id, text)
        except DiscordAPIError as exc:
            logger.warning("Could not send DM to %s: %s", identity.id, exc)
        else:
            logger.info("Sent verification success DM to %s", identity.id)
