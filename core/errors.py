from enum import Enum


class StoreNotReadyError(RuntimeError):
    """Raised when a store is used before ``load()`` has completed."""


class RejectionReason(str, Enum):
    NOT_FOUND = "not_found"
    SECRET_MISMATCH = "secret_mismatch"
    COMMUNITY_MISMATCH = "community_mismatch"
    EXPIRED = "expired"


class DiscordAPIError(Exception):
    """Raised when a Discord REST call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VerificationError(Exception):
    """Base class for failures of a single verification attempt.

    ``user_message`` is the only text shown to the end user; anything passed
    to the constructor is operator detail and goes to the logs.
    """

    status_code = 400
    user_message = "An error occurred during verification. Please try again."


class BadRequestError(VerificationError):
    status_code = 400
    user_message = "Invalid callback parameters"


class SessionRejectedError(VerificationError):
    status_code = 403
    user_message = "Verification link expired or invalid. Please try again."

    def __init__(self, reason: RejectionReason, subject_id: str | None = None) -> None:
        super().__init__(f"session rejected for {subject_id}: {reason.value}")
        self.reason = reason
        self.subject_id = subject_id


class UpstreamError(VerificationError):
    status_code = 502


class IdentityMismatchError(VerificationError):
    status_code = 403
    user_message = "User verification failed. Please try again."


class NotConfiguredError(VerificationError):
    status_code = 409
    user_message = "Verification is not configured for this server. Please contact an administrator."


class RoleGrantError(VerificationError):
    status_code = 409
    user_message = "Verification succeeded, but role assignment failed. Please contact an administrator."
