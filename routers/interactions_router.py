from fastapi import APIRouter, Depends

from core.auth import verified_interaction
from core.dependencies import AppServices, get_services

router = APIRouter(prefix="/interactions", tags=["Discord"])


@router.post("")
def interactions(
    payload: dict = Depends(verified_interaction),
    services: AppServices = Depends(get_services),
):
    """Discord interactions endpoint (slash commands and buttons)."""
    return services.interactions.handle(payload)
