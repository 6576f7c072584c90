"""
Text challenge generation and validation.

Challenges are drawn from a cryptographically secure source and only their
one-way digest leaves this module; the plaintext exists solely inside the
display glyphs handed to whatever renders the challenge page.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass
from typing import List, Optional, Tuple

# Letters without i/l/o (either case) plus digits without 0/1.
_LETTERS = "".join(ch for ch in string.ascii_lowercase if ch not in "ilo")
ALPHABET = _LETTERS + _LETTERS.upper() + "23456789"

_rng = secrets.SystemRandom()


@dataclass(frozen=True)
class Glyph:
    char: str
    rotation: float
    scale: float
    offset: float
    color: Tuple[int, int, int]


@dataclass(frozen=True)
class ChallengeDisplay:
    glyphs: List[Glyph]

    @property
    def length(self) -> int:
        return len(self.glyphs)


@dataclass(frozen=True)
class GeneratedChallenge:
    display: ChallengeDisplay
    secret_digest: str


def digest(answer: str) -> str:
    return hashlib.sha256(answer.lower().encode("utf-8")).hexdigest()


def _jitter(char: str) -> Glyph:
    return Glyph(
        char=char,
        rotation=round(_rng.uniform(-10.0, 10.0), 2),
        scale=round(_rng.uniform(0.8, 1.3), 2),
        offset=round(_rng.uniform(0.0, 5.0), 2),
        color=(secrets.randbelow(100), secrets.randbelow(100), secrets.randbelow(100)),
    )


class ChallengeGenerator:
    def __init__(self, min_length: int = 5, max_length: int = 7, alphabet: str = ALPHABET) -> None:
        if min_length <= 0 or min_length > max_length:
            raise ValueError("invalid challenge length range")
        if not alphabet:
            raise ValueError("alphabet must not be empty")
        self.min_length = min_length
        self.max_length = max_length
        self.alphabet = alphabet

    def _length(self) -> int:
        return self.min_length + secrets.randbelow(self.max_length - self.min_length + 1)

    def generate(self) -> GeneratedChallenge:
        answer = "".join(secrets.choice(self.alphabet) for _ in range(self._length()))
        display = ChallengeDisplay(glyphs=[_jitter(ch) for ch in answer])
        return GeneratedChallenge(display=display, secret_digest=digest(answer))


def validate(user_input: Optional[str], secret_digest: Optional[str]) -> bool:
    """Return ``True`` when ``user_input`` hashes to ``secret_digest``.

    Comparison is case-insensitive and fails closed on empty input. The
    input is hashed as given; callers trim form padding before calling.
    """
    if not user_input or not secret_digest:
        return False
    return hmac.compare_digest(digest(user_input), secret_digest)


__all__ = [
    "ALPHABET",
    "ChallengeDisplay",
    "ChallengeGenerator",
    "GeneratedChallenge",
    "Glyph",
    "digest",
    "validate",
]
