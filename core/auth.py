import json
import logging

from fastapi import Depends, Header, HTTPException, Request, status
from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from core.dependencies import AppServices, get_services

logger = logging.getLogger(__name__)


def verify_discord_signature(
    signature: str | None,
    timestamp: str | None,
    body: bytes,
    public_key: str,
) -> None:
    """Check Discord's Ed25519 signature over ``timestamp + body``."""
    if not signature or not timestamp:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing signature or timestamp headers")

    try:
        verify_key = VerifyKey(bytes.fromhex(public_key))
        verify_key.verify(timestamp.encode() + body, bytes.fromhex(signature))
    except BadSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    except ValueError:
        logger.warning("Malformed interaction signature or public key")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Signature verification failed")


async def verified_interaction(
    request: Request,
    x_signature_ed25519: str | None = Header(None, alias="X-Signature-Ed25519"),
    x_signature_timestamp: str | None = Header(None, alias="X-Signature-Timestamp"),
    services: AppServices = Depends(get_services),
) -> dict:
    """Return the interaction payload once its signature checks out."""
    body = await request.body()
    verify_discord_signature(
        x_signature_ed25519,
        x_signature_timestamp,
        body,
        services.settings.DISCORD_PUBLIC_KEY,
    )
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    return payload
