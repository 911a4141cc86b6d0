from pydantic import BaseModel


class VerificationSession(BaseModel):
    """A pending verification, stored under the subject's user id."""

    community_id: str
    secret: str
    # Epoch milliseconds
    created_at: int

    def is_expired(self, now: int, window_ms: int) -> bool:
        return now - self.created_at > window_ms
