import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from core.dependencies import AppServices, get_services
from core.errors import IdentityMismatchError, SessionRejectedError, UpstreamError, VerificationError
from core.pages import error_page, landing_page, success_page, verify_page
from services.redemption import STATE_DELIMITER, compose_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Verification"])

_STARTED = time.monotonic()


@router.get("/", response_class=HTMLResponse)
def root():
    return landing_page()


@router.get("/health")
def health(services: AppServices = Depends(get_services)):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _STARTED, 3),
        "pending_verifications": services.sessions.pending_count(),
    }


@router.get("/verify", response_class=HTMLResponse)
def verify(
    user: str | None = None,
    guild: str | None = None,
    state: str | None = None,
    services: AppServices = Depends(get_services),
):
    """Landing page that sends the user on to Discord's consent screen."""
    fields = (user, guild, state)
    if not all(fields) or any(STATE_DELIMITER in f for f in fields):
        logger.warning("Verification page accessed without valid parameters")
        return HTMLResponse("Invalid verification link", status_code=400)

    logger.info("Verification page accessed for user %s in guild %s", user, guild)
    server_name = services.chat.get_guild_name(guild) or "Server"
    authorize_url = services.oauth.authorize_url(compose_state(user, guild, state))
    return verify_page(server_name, authorize_url)


@router.get("/callback", response_class=HTMLResponse)
def callback(
    code: str | None = None,
    state: str | None = None,
    services: AppServices = Depends(get_services),
):
    """OAuth2 redirect target: redeem the session and grant the role."""
    if not code or not state:
        logger.warning("Callback received without code or state")
        return HTMLResponse("Invalid callback parameters", status_code=400)

    try:
        member = services.orchestrator.complete(code, state)
    except VerificationError as exc:
        if isinstance(exc, UpstreamError):
            logger.error("OAuth2 provider error: %s", exc)
        elif not isinstance(exc, (SessionRejectedError, IdentityMismatchError)):
            # Rejections and mismatches are already logged where they happen
            logger.warning("Verification failed (%s): %s", type(exc).__name__, exc)
        return HTMLResponse(error_page(exc.user_message), status_code=exc.status_code)

    logger.info("User %s successfully verified and role assigned", member.user_id)
    return success_page(member.username)
