from dataclasses import dataclass

from fastapi import Request

from core.config import Settings
from crud.community_settings_store import CommunitySettingsStore
from crud.verification_store import VerificationStore
from services.discord_oauth import DiscordOAuthClient
from services.interactions import InteractionHandler
from services.redemption import ChatPlatform, RedemptionOrchestrator
from services.sweeper import ExpirySweeper


@dataclass
class AppServices:
    settings: Settings
    sessions: VerificationStore
    community_settings: CommunitySettingsStore
    oauth: DiscordOAuthClient
    chat: ChatPlatform
    orchestrator: RedemptionOrchestrator
    interactions: InteractionHandler
    sweeper: ExpirySweeper


def get_services(request: Request) -> AppServices:
    return request.app.state.services
