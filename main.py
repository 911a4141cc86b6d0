import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from core.config import EXIT_MISSING_CONFIG, Settings, get_settings
from core.dependencies import AppServices
from core.errors import DiscordAPIError
from core.logging_config import configure_logging
from core.storage import JsonDocument
from crud.community_settings_store import CommunitySettingsStore
from crud.verification_store import VerificationStore
from routers import interactions_router, verify_router
from services.discord_api import DiscordBotClient
from services.discord_oauth import DiscordOAuthClient
from services.interactions import COMMANDS, InteractionHandler
from services.redemption import ChatPlatform, IdentityProvider, RedemptionOrchestrator
from services.sweeper import ExpirySweeper

logger = logging.getLogger(__name__)


def build_services(
    settings: Settings,
    *,
    sessions: VerificationStore | None = None,
    community_settings: CommunitySettingsStore | None = None,
    identity_provider: IdentityProvider | None = None,
    chat: ChatPlatform | None = None,
) -> AppServices:
    if sessions is None:
        sessions = VerificationStore(
            JsonDocument(os.path.join(settings.DATA_DIR, settings.SESSIONS_FILE)),
            expiration_ms=settings.VERIFICATION_EXPIRATION_MS,
        )
    if community_settings is None:
        community_settings = CommunitySettingsStore(
            JsonDocument(os.path.join(settings.DATA_DIR, settings.COMMUNITY_SETTINGS_FILE))
        )
    oauth = DiscordOAuthClient(
        settings.CLIENT_ID,
        settings.CLIENT_SECRET,
        settings.REDIRECT_URI,
        api_url=settings.DISCORD_API_URL,
        authorize_endpoint=settings.DISCORD_AUTHORIZE_URL,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
    if chat is None:
        chat = DiscordBotClient(
            settings.DISCORD_TOKEN,
            api_url=settings.DISCORD_API_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    return AppServices(
        settings=settings,
        sessions=sessions,
        community_settings=community_settings,
        oauth=oauth,
        chat=chat,
        orchestrator=RedemptionOrchestrator(sessions, community_settings, identity_provider or oauth, chat),
        interactions=InteractionHandler(
            sessions,
            community_settings,
            chat,
            base_url=settings.BASE_URL,
            expiration_minutes=settings.expiration_minutes,
        ),
        sweeper=ExpirySweeper(sessions, interval=settings.CLEANUP_INTERVAL_MS / 1000),
    )


def _register_commands(services: AppServices) -> None:
    register = getattr(services.chat, "register_commands", None)
    if register is None:
        return
    try:
        register(services.settings.CLIENT_ID, COMMANDS)
    except DiscordAPIError:
        logger.exception("Failed to register commands")
    else:
        logger.info("Successfully registered global commands")


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: AppServices = app.state.services
    services.community_settings.load()
    services.sessions.load()
    if services.settings.REGISTER_COMMANDS:
        await run_in_threadpool(_register_commands, services)
    services.sweeper.start()
    logger.info("Verification service is ready")
    try:
        yield
    finally:
        logger.info("Shutting down, persisting state")
        await run_in_threadpool(services.sweeper.stop)
        services.sessions.persist()
        services.community_settings.persist()


def create_app(settings: Settings | None = None, **overrides) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Discord Verification Bot", lifespan=lifespan)
    app.state.services = build_services(settings, **overrides)

    # Respect X-Forwarded-Proto/Host when behind a proxy (Docker/nginx/etc.)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    app.include_router(verify_router.router)
    app.include_router(interactions_router.router)
    return app


def run() -> None:
    import uvicorn

    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    try:
        settings = get_settings()
    except ValidationError as exc:
        missing = ", ".join(str(err["loc"][0]) for err in exc.errors())
        logger.critical("Missing or invalid configuration: %s", missing)
        sys.exit(EXIT_MISSING_CONFIG)

    configure_logging(settings.LOG_LEVEL)
    logger.info("Redirect URI: %s", settings.REDIRECT_URI)
    logger.info("Base URL: %s", settings.BASE_URL)
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
