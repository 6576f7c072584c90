from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from humangate.errors import ERROR_MESSAGES
from humangate.security.gate import IssuedChallenge, VerificationStatus


class GlyphOut(BaseModel):
    char: str
    rotation: float
    scale: float
    offset: float
    color: Tuple[int, int, int]


class ChallengeResponse(BaseModel):
    glyphs: List[GlyphOut]
    length: int
    submit_path: str
    expires_in: int
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_issued(cls, issued: IssuedChallenge, submit_path: str) -> "ChallengeResponse":
        glyphs = [
            GlyphOut(char=g.char, rotation=g.rotation, scale=g.scale, offset=g.offset, color=g.color)
            for g in issued.display.glyphs
        ]
        return cls(
            glyphs=glyphs,
            length=len(glyphs),
            submit_path=submit_path,
            expires_in=issued.expires_in,
            error=issued.error,
            message=ERROR_MESSAGES.get(issued.error) if issued.error else None,
        )


class SubmissionPayload(BaseModel):
    answer: str = Field(default="")


class StatusResponse(BaseModel):
    verified: bool
    verified_at: Optional[datetime] = None
    seconds_remaining: Optional[int] = None

    @classmethod
    def from_status(cls, status: VerificationStatus) -> "StatusResponse":
        verified_at = (
            datetime.fromtimestamp(status.verified_at, tz=timezone.utc)
            if status.verified_at is not None
            else None
        )
        return cls(
            verified=status.verified,
            verified_at=verified_at,
            seconds_remaining=status.seconds_remaining,
        )
