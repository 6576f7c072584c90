"""Error taxonomy for the verification gate."""

from __future__ import annotations


class GateError(Exception):
    code = "gate_error"
    message = "Verification gate error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class SessionUnavailable(GateError):
    """The session collaborator could not be read or written."""

    code = "session_unavailable"
    message = "Session error. Please try again."


class ChallengeExpired(GateError):
    code = "expired"
    message = "Captcha expired. Please try again."


class ChallengeMismatch(GateError):
    code = "incorrect"
    message = "Incorrect captcha. Please try again."


class RateLimitExceeded(GateError):
    code = "too_many_requests"
    message = "Too many requests. Please try again later."

    def __init__(self, client_id: str, retry_after: int) -> None:
        super().__init__()
        self.client_id = client_id
        self.retry_after = retry_after


# Error codes stored in the session, mapped to their user-facing text.
ERROR_MESSAGES = {
    ChallengeExpired.code: ChallengeExpired.message,
    ChallengeMismatch.code: ChallengeMismatch.message,
}


__all__ = [
    "GateError",
    "SessionUnavailable",
    "ChallengeExpired",
    "ChallengeMismatch",
    "RateLimitExceeded",
    "ERROR_MESSAGES",
]
