import logging
import re
import threading

from pydantic import ValidationError

from core.errors import StoreNotReadyError
from core.storage import JsonDocument
from models.community import CommunitySettings
from schemas.community_schema import CommunitySettingsUpdate

logger = logging.getLogger(__name__)

SERVER_NAME_FALLBACK = "Server"
USER_NAME_FALLBACK = "User"

_PLACEHOLDER = re.compile(r"\{(servername|username)\}")

# role_id may be cleared; every other field always holds a value
_NULLABLE_FIELDS = {"role_id"}


def render_template(
    template: str,
    community_name: str | None = None,
    subject_name: str | None = None,
) -> str:
    """Fill ``{servername}`` and ``{username}`` in one pass; other text is left alone."""
    values = {
        "servername": community_name or SERVER_NAME_FALLBACK,
        "username": subject_name or USER_NAME_FALLBACK,
    }
    return _PLACEHOLDER.sub(lambda match: values[match.group(1)], template)


class CommunitySettingsStore:
    """Owns every guild's settings. Callers only ever see copies."""

    def __init__(self, document: JsonDocument | None) -> None:
        self._document = document
        self._settings: dict[str, CommunitySettings] = {}
        self._lock = threading.Lock()
        self._ready = False

    def load(self) -> None:
        with self._lock:
            if self._ready:
                return
            restored: dict[str, CommunitySettings] = {}
            data = self._document.read() if self._document else None
            for community_id, raw in (data or {}).items():
                try:
                    restored[community_id] = CommunitySettings.model_validate(raw)
                except ValidationError:
                    logger.warning("Dropping unreadable settings for guild %s", community_id)
            self._settings = restored
            self._ready = True
        if data is None:
            logger.info("No existing guild settings found, using defaults")
        else:
            logger.info("Loaded settings for %d server(s) from storage", len(restored))

    def get(self, community_id: str) -> CommunitySettings:
        self._ensure_ready()
        with self._lock:
            current = self._settings.get(community_id)
            return current.model_copy() if current else CommunitySettings()

    def update(self, community_id: str, partial: CommunitySettingsUpdate) -> CommunitySettings:
        """Merge the fields set on ``partial`` over current-or-default settings."""
        self._ensure_ready()
        changes = {
            field: value
            for field, value in partial.model_dump(exclude_unset=True).items()
            if value is not None or field in _NULLABLE_FIELDS
        }
        with self._lock:
            current = self._settings.get(community_id) or CommunitySettings()
            merged = CommunitySettings.model_validate({**current.model_dump(), **changes})
            self._settings[community_id] = merged
            self._persist_locked()
        logger.info("Updated settings for guild %s (%s)", community_id, ", ".join(sorted(changes)) or "no changes")
        return merged.model_copy()

    def persist(self) -> None:
        with self._lock:
            if self._ready:
                self._persist_locked()

    def _persist_locked(self) -> None:
        if self._document is None:
            return
        data = {community_id: s.model_dump() for community_id, s in self._settings.items()}
        try:
            self._document.write(data)
        except OSError:
            logger.exception("Failed to persist guild settings")

    def _ensure_ready(self) -> None:
        if not self._ready:
            raise StoreNotReadyError("community settings store used before load()")
