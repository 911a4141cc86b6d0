import logging
import secrets
import threading
import time
from collections.abc import Callable

from pydantic import ValidationError

from core.errors import RejectionReason, SessionRejectedError, StoreNotReadyError
from core.storage import JsonDocument
from core.tokens import generate_secret
from models.verification import VerificationSession

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class VerificationStore:
    """Single-use, time-bounded verification sessions keyed by subject id.

    Every mutation runs its read-modify-persist sequence under one lock, so
    concurrent ``create``/``redeem``/``sweep_expired`` calls never lose each
    other's updates. Callers must call ``load()`` before anything else.
    """

    def __init__(
        self,
        document: JsonDocument | None,
        *,
        expiration_ms: int = 300000,
        clock: Callable[[], int] = now_ms,
        token_factory: Callable[[], str] = generate_secret,
    ) -> None:
        self._document = document
        self._expiration_ms = expiration_ms
        self._clock = clock
        self._token_factory = token_factory
        self._sessions: dict[str, VerificationSession] = {}
        self._lock = threading.Lock()
        self._ready = False

    @property
    def expiration_ms(self) -> int:
        return self._expiration_ms

    @property
    def ready(self) -> bool:
        return self._ready

    def load(self) -> None:
        """Restore the last snapshot; a missing snapshot is a cold start."""
        with self._lock:
            if self._ready:
                return
            restored: dict[str, VerificationSession] = {}
            data = self._document.read() if self._document else None
            for subject_id, raw in (data or {}).items():
                try:
                    restored[subject_id] = VerificationSession.model_validate(raw)
                except ValidationError:
                    logger.warning("Dropping unreadable session record for user %s", subject_id)
            self._sessions = restored
            self._ready = True
        if data is None:
            logger.info("No existing verification data found, starting fresh")
        else:
            logger.info("Loaded %d pending verifications from storage", len(restored))

    def create(self, subject_id: str, community_id: str) -> str:
        """Start a verification for ``subject_id``, replacing any pending one."""
        self._ensure_ready()
        secret = self._token_factory()
        with self._lock:
            self._sessions[subject_id] = VerificationSession(
                community_id=community_id,
                secret=secret,
                created_at=self._clock(),
            )
            self._persist_locked()
        logger.info("Added pending verification for user %s in guild %s", subject_id, community_id)
        return secret

    def redeem(self, subject_id: str, presented_secret: str) -> str:
        """Consume the session and return its community id.

        Raises SessionRejectedError. A wrong secret leaves the session in
        place; an expired one is deleted.
        """
        self._ensure_ready()
        with self._lock:
            session = self._sessions.get(subject_id)
            if session is None:
                reason = RejectionReason.NOT_FOUND
            elif not secrets.compare_digest(session.secret.encode(), presented_secret.encode()):
                reason = RejectionReason.SECRET_MISMATCH
            elif session.is_expired(self._clock(), self._expiration_ms):
                del self._sessions[subject_id]
                self._persist_locked()
                reason = RejectionReason.EXPIRED
            else:
                del self._sessions[subject_id]
                self._persist_locked()
                logger.info("Redeemed verification for user %s in guild %s", subject_id, session.community_id)
                return session.community_id

        if reason is RejectionReason.SECRET_MISMATCH:
            logger.warning("State mismatch for user %s - possible CSRF attempt", subject_id)
        else:
            logger.warning("Rejected verification for user %s: %s", subject_id, reason.value)
        raise SessionRejectedError(reason, subject_id)

    def sweep_expired(self) -> int:
        """Remove every session older than the expiration window."""
        self._ensure_ready()
        with self._lock:
            now = self._clock()
            expired = [
                subject_id
                for subject_id, session in self._sessions.items()
                if session.is_expired(now, self._expiration_ms)
            ]
            for subject_id in expired:
                del self._sessions[subject_id]
            if expired:
                self._persist_locked()
        if expired:
            logger.info("Cleaned up %d expired verification(s)", len(expired))
        return len(expired)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def persist(self) -> None:
        """Rewrite the whole snapshot. A store that never loaded writes nothing."""
        with self._lock:
            if self._ready:
                self._persist_locked()

    def _persist_locked(self) -> None:
        if self._document is None:
            return
        data = {subject_id: s.model_dump() for subject_id, s in self._sessions.items()}
        try:
            self._document.write(data)
        except OSError:
            # In-memory state stays authoritative for this process.
            logger.exception("Failed to persist verification data")

    def _ensure_ready(self) -> None:
        if not self._ready:
            raise StoreNotReadyError("verification store used before load()")
