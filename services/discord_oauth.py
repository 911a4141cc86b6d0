import logging
import urllib.parse

import requests

from core.errors import UpstreamError
from schemas.identity_schema import Identity

logger = logging.getLogger(__name__)

OAUTH_SCOPES = "identify guilds.members.read"


class DiscordOAuthClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        api_url: str = "https://discord.com/api/v10",
        authorize_endpoint: str = "https://discord.com/oauth2/authorize",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.api_url = api_url.rstrip("/")
        self.authorize_endpoint = authorize_endpoint
        self.timeout = timeout
        self._session = session or requests.Session()

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": OAUTH_SCOPES,
            "state": state,
        }
        return self.authorize_endpoint + "?" + urllib.parse.urlencode(params)

    def exchange_code(self, code: str) -> str:
        """Trade the authorization code for an access token."""
        try:
            resp = self._session.post(
                f"{self.api_url}/oauth2/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"token exchange request failed: {exc}") from exc
        if resp.status_code != 200:
            raise UpstreamError(f"token exchange failed with {resp.status_code}: {resp.text[:200]}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamError("token response was not JSON") from exc
        if not isinstance(payload, dict):
            raise UpstreamError("token response was not a JSON object")
        access_token = payload.get("access_token")
        if not access_token:
            raise UpstreamError("no access token returned")
        return access_token

    def fetch_identity(self, access_token: str) -> Identity:
        try:
            resp = self._session.get(
                f"{self.api_url}/users/@me",
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"userinfo request failed: {exc}") from exc
        if resp.status_code != 200:
            raise UpstreamError(f"userinfo failed with {resp.status_code}: {resp.text[:200]}")

        try:
            info = resp.json()
        except ValueError as exc:
            raise UpstreamError("userinfo response was not JSON") from exc
        if not isinstance(info, dict):
            raise UpstreamError("userinfo response was not a JSON object")
        user_id = info.get("id")
        if not user_id:
            raise UpstreamError("no user id in userinfo")
        username = info.get("username") or info.get("global_name") or ""
        return Identity(id=str(user_id), username=username)
