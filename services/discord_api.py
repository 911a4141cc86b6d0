import logging
from typing import Any

import requests

from core.errors import DiscordAPIError
from schemas.identity_schema import Role

logger = logging.getLogger(__name__)


class DiscordBotClient:
    """Role, guild and DM operations performed as the bot."""

    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://discord.com/api/v10",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bot {bot_token}"})

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        url = f"{self.api_url}{endpoint}"
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise DiscordAPIError(f"{method} {endpoint} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise DiscordAPIError(
                f"{method} {endpoint} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise DiscordAPIError(f"{method} {endpoint} returned invalid JSON") from exc

    def get_guild_name(self, guild_id: str) -> str | None:
        try:
            guild = self._request("GET", f"/guilds/{guild_id}")
        except DiscordAPIError as exc:
            logger.warning("Could not fetch guild %s: %s", guild_id, exc)
            return None
        if not isinstance(guild, dict):
            return None
        return guild.get("name")

    def lookup_role(self, guild_id: str, role_id: str) -> Role | None:
        roles = self._request("GET", f"/guilds/{guild_id}/roles") or []
        for role in roles:
            if str(role.get("id")) == str(role_id):
                return Role(id=str(role["id"]), name=role.get("name") or "")
        return None

    def grant_role(self, user_id: str, guild_id: str, role_id: str) -> None:
        """Add the role to the member. Discord treats an existing grant as success."""
        self._request(
            "PUT",
            f"/guilds/{guild_id}/members/{user_id}/roles/{role_id}",
            headers={"X-Audit-Log-Reason": "Member verified via OAuth2"},
        )

    def send_direct_message(self, user_id: str, text: str) -> None:
        channel = self._request("POST", "/users/@me/channels", json={"recipient_id": user_id})
        if not channel or "id" not in channel:
            raise DiscordAPIError(f"no DM channel returned for user {user_id}")
        self._request("POST", f"/channels/{channel['id']}/messages", json={"content": text})

    def register_commands(self, application_id: str, commands: list[dict]) -> None:
        self._request("PUT", f"/applications/{application_id}/commands", json=commands)
