import logging
import urllib.parse
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from core.errors import DiscordAPIError
from crud.community_settings_store import CommunitySettingsStore, render_template
from crud.verification_store import VerificationStore
from schemas.community_schema import CommunitySettingsUpdate, color_to_int
from services.redemption import ChatPlatform

logger = logging.getLogger(__name__)

# Interaction types
PING = 1
APPLICATION_COMMAND = 2
MESSAGE_COMPONENT = 3

# Response types
PONG = 1
CHANNEL_MESSAGE_WITH_SOURCE = 4

EPHEMERAL = 64
ADMINISTRATOR = 1 << 3

SETUP_COMMAND = "verifysetup"
VERIFY_BUTTON_ID = "verify_button"

COMMANDS = [
    {
        "name": SETUP_COMMAND,
        "description": "Setup verification message with customizable text",
        "default_member_permissions": str(ADMINISTRATOR),
        "dm_permission": False,
        "options": [
            {
                "type": 8,  # ROLE
                "name": "role",
                "description": "The role to give after verification",
                "required": True,
            },
            {
                "type": 3,  # STRING
                "name": "title",
                "description": "Title of the verification embed (use {servername} for server name)",
                "required": False,
            },
            {
                "type": 3,
                "name": "description",
                "description": "Description text (use {servername} and {username} as placeholders)",
                "required": False,
            },
            {
                "type": 3,
                "name": "color",
                "description": "Embed color in hex format (e.g., #5865F2)",
                "required": False,
            },
        ],
    }
]


def ephemeral(content: str) -> dict:
    return {"type": CHANNEL_MESSAGE_WITH_SOURCE, "data": {"content": content, "flags": EPHEMERAL}}


def build_verify_url(base_url: str, user_id: str, guild_id: str, secret: str) -> str:
    query = urllib.parse.urlencode({"user": user_id, "guild": guild_id, "state": secret})
    return f"{base_url.rstrip('/')}/verify?{query}"


def _embed(title: str, description: str, color: str) -> dict:
    return {
        "title": title,
        "description": description,
        "color": color_to_int(color),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _member_user(payload: dict) -> dict:
    return payload.get("user") or (payload.get("member") or {}).get("user") or {}


class InteractionHandler:
    def __init__(
        self,
        sessions: VerificationStore,
        community_settings: CommunitySettingsStore,
        chat: ChatPlatform,
        *,
        base_url: str,
        expiration_minutes: int = 5,
    ) -> None:
        self._sessions = sessions
        self._community_settings = community_settings
        self._chat = chat
        self._base_url = base_url
        self._expiration_minutes = expiration_minutes

    def handle(self, payload: dict) -> dict:
        interaction_type = payload.get("type")
        if interaction_type == PING:
            return {"type": PONG}

        data = payload.get("data") or {}
        if not payload.get("guild_id"):
            return ephemeral("This can only be used in a server.")
        if interaction_type == APPLICATION_COMMAND and data.get("name") == SETUP_COMMAND:
            return self._setup(payload)
        if interaction_type == MESSAGE_COMPONENT and data.get("custom_id") == VERIFY_BUTTON_ID:
            return self._verify_requested(payload)

        logger.info("Unhandled interaction type=%s data=%s", interaction_type, data.get("name") or data.get("custom_id"))
        return ephemeral("Unsupported interaction.")

    def _setup(self, payload: dict) -> dict:
        guild_id = str(payload["guild_id"])
        data = payload.get("data") or {}
        user = _member_user(payload)
        options: dict[str, Any] = {opt.get("name"): opt.get("value") for opt in data.get("options") or []}
        server_name = self._chat.get_guild_name(guild_id) or "Server"
        logger.info("/%s executed by %s in %s", SETUP_COMMAND, user.get("username"), server_name)

        role_id = options.get("role")
        if not role_id:
            return ephemeral("Please specify a valid role for verification.")

        changes: dict[str, Any] = {"role_id": str(role_id)}
        if options.get("title"):
            changes["prompt_title"] = options["title"]
        if options.get("description"):
            changes["prompt_body"] = options["description"]
        if options.get("color"):
            changes["prompt_color"] = options["color"]
        try:
            update = CommunitySettingsUpdate(**changes)
        except ValidationError:
            return ephemeral("Invalid color. Use a hex value like #5865F2.")

        settings = self._community_settings.update(guild_id, update)
        role_name = ((data.get("resolved") or {}).get("roles") or {}).get(str(role_id), {}).get("name", role_id)
        logger.info("Verification message sent in %s with role %s", server_name, role_name)

        embed = _embed(
            render_template(settings.prompt_title, community_name=server_name),
            render_template(settings.prompt_body, community_name=server_name),
            settings.prompt_color,
        )
        button = {"type": 2, "style": 3, "label": "Verify", "custom_id": VERIFY_BUTTON_ID}
        return {
            "type": CHANNEL_MESSAGE_WITH_SOURCE,
            "data": {"embeds": [embed], "components": [{"type": 1, "components": [button]}]},
        }

    def _verify_requested(self, payload: dict) -> dict:
        guild_id = str(payload["guild_id"])
        user = _member_user(payload)
        user_id = str(user.get("id") or "")
        username = user.get("username")
        if not user_id:
            return ephemeral("An error occurred. Please try again later.")

        settings = self._community_settings.get(guild_id)
        if not settings.role_id:
            logger.error("No role configured for guild %s", guild_id)
            return ephemeral("Verification is not configured for this server. Please contact an administrator.")

        try:
            role = self._chat.lookup_role(guild_id, settings.role_id)
        except DiscordAPIError:
            logger.exception("Failed to look up roles for guild %s", guild_id)
            return ephemeral("An error occurred. Please try again later.")
        if role is None:
            logger.error("Verified role %s not found in guild %s", settings.role_id, guild_id)
            return ephemeral("The verification role was deleted. Please contact an administrator.")

        member_roles = [str(r) for r in (payload.get("member") or {}).get("roles") or []]
        if role.id in member_roles:
            logger.info("User %s is already verified", username)
            return ephemeral("You are already verified!")

        secret = self._sessions.create(user_id, guild_id)
        url = build_verify_url(self._base_url, user_id, guild_id, secret)
        server_name = self._chat.get_guild_name(guild_id) or "Server"
        title = render_template(settings.direct_message_title, community_name=server_name, subject_name=username)
        body = render_template(settings.direct_message_body, community_name=server_name, subject_name=username)
        embed = _embed(
            title,
            f"{body}\n\n**[Click here to verify]({url})**\n\n"
            f"*This link will expire in {self._expiration_minutes} minutes*",
            settings.direct_message_color,
        )
        logger.info("Verification link sent to %s", username)
        return {"type": CHANNEL_MESSAGE_WITH_SOURCE, "data": {"embeds": [embed], "flags": EPHEMERAL}}
