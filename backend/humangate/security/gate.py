"""
Per-session verification state machine.

A session is in one of three states, derived from the fields it carries:

* Unverified - no challenge, ``captchaPassed`` unset.
* ChallengePending - ``captchaHash`` and ``captchaGeneratedAt`` are set.
* Verified - ``captchaPassed`` and ``captchaPassedAt`` are set, no challenge.

Verified sessions decay lazily: the first request after ``verified_ttl``
clears the marker and is treated as coming from an unverified session.
Every read-modify-write of a session's fields runs under that session's lock.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Iterable, Optional

from humangate.core.settings import Settings
from humangate.errors import ChallengeExpired, ChallengeMismatch, RateLimitExceeded
from humangate.security.challenge import ChallengeDisplay, ChallengeGenerator, validate
from humangate.security.logger import gate_logger as logger, session_tag
from humangate.security.rate_limit import RateLimiter
from humangate.security.sessions import SessionStore

Clock = Callable[[], float]

CAPTCHA_HASH = "captchaHash"
CAPTCHA_GENERATED_AT = "captchaGeneratedAt"
CAPTCHA_PASSED = "captchaPassed"
CAPTCHA_PASSED_AT = "captchaPassedAt"
CAPTCHA_ERROR = "captchaError"
ORIGINAL_PATH = "originalPath"


class Decision(str, Enum):
    ALLOW = "allow"
    CHALLENGE = "challenge"
    REJECT_RATE_LIMITED = "reject-rate-limited"


class SubmitOutcome(str, Enum):
    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"
    EXPIRED = ChallengeExpired.code
    INCORRECT = ChallengeMismatch.code


@dataclass(frozen=True)
class GateResult:
    decision: Decision
    redirect_to: Optional[str] = None
    retry_after: int = 0


@dataclass(frozen=True)
class IssuedChallenge:
    display: ChallengeDisplay
    expires_in: int
    error: Optional[str] = None


@dataclass(frozen=True)
class IssueResult:
    challenge: Optional[IssuedChallenge] = None
    redirect_to: Optional[str] = None


@dataclass(frozen=True)
class SubmitResult:
    outcome: SubmitOutcome
    redirect_to: str


@dataclass(frozen=True)
class VerificationStatus:
    verified: bool
    verified_at: Optional[float] = None
    seconds_remaining: Optional[int] = None


def _is_local_path(path: str) -> bool:
    # Only same-origin absolute paths; "//host" and "/\host" are protocol-relative.
    return path.startswith("/") and not path.startswith("//") and not path.startswith("/\\")


class AccessGate:
    def __init__(
        self,
        sessions: SessionStore,
        limiter: RateLimiter,
        generator: ChallengeGenerator,
        *,
        challenge_path: str = "/verify",
        submit_path: str = "/process-verify",
        landing_path: str = "/",
        exempt_paths: Iterable[str] = (),
        challenge_ttl: float = 120,
        verified_ttl: float = 3600,
        clock: Clock = time.time,
    ) -> None:
        self.sessions = sessions
        self.limiter = limiter
        self.generator = generator
        self.challenge_path = challenge_path
        self.submit_path = submit_path
        self.landing_path = landing_path
        self.exempt_paths: FrozenSet[str] = frozenset({challenge_path, submit_path, *exempt_paths})
        self.challenge_ttl = challenge_ttl
        self.verified_ttl = verified_ttl
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sessions: SessionStore,
        limiter: RateLimiter,
        clock: Clock = time.time,
    ) -> "AccessGate":
        generator = ChallengeGenerator(settings.challenge_min_length, settings.challenge_max_length)
        return cls(
            sessions,
            limiter,
            generator,
            challenge_path=settings.challenge_path,
            submit_path=settings.submit_path,
            landing_path=settings.landing_path,
            exempt_paths=settings.exempt_paths,
            challenge_ttl=settings.challenge_ttl_seconds,
            verified_ttl=settings.verified_ttl_seconds,
            clock=clock,
        )

    def _now(self) -> float:
        return self._clock()

    def is_exempt(self, path: str) -> bool:
        return path in self.exempt_paths

    # ---- request gating ----

    def evaluate(self, client_id: str, session_id: str, path: str, query: str = "") -> GateResult:
        try:
            self.limiter.enforce(client_id)
        except RateLimitExceeded as exc:
            logger.warning(f"Rate limit exceeded for client {exc.client_id} retry_after={exc.retry_after}")
            return GateResult(Decision.REJECT_RATE_LIMITED, retry_after=exc.retry_after)

        if self.is_exempt(path):
            return GateResult(Decision.ALLOW)

        with self.sessions.lock(session_id):
            if self._is_verified(session_id, self._now()):
                return GateResult(Decision.ALLOW)
            self._remember_path(session_id, path, query)
        return GateResult(Decision.CHALLENGE, redirect_to=self.challenge_path)

    def _is_verified(self, session_id: str, now: float) -> bool:
        passed = self.sessions.get(session_id, CAPTCHA_PASSED)
        passed_at = self.sessions.get(session_id, CAPTCHA_PASSED_AT)
        if not passed or passed_at is None:
            return False
        if now - passed_at > self.verified_ttl:
            self.sessions.delete(session_id, CAPTCHA_PASSED, CAPTCHA_PASSED_AT)
            logger.info(f"Verification expired for session {session_tag(session_id)}")
            return False
        return True

    def _remember_path(self, session_id: str, path: str, query: str) -> None:
        if not _is_local_path(path):
            return
        target = f"{path}?{query}" if query else path
        self.sessions.set(session_id, ORIGINAL_PATH, target)

    # ---- challenge issuance and submission ----

    def issue(self, session_id: str) -> IssueResult:
        with self.sessions.lock(session_id):
            now = self._now()
            if self._is_verified(session_id, now):
                return IssueResult(redirect_to=self.landing_path)

            generated = self.generator.generate()
            self.sessions.set(session_id, CAPTCHA_HASH, generated.secret_digest)
            self.sessions.set(session_id, CAPTCHA_GENERATED_AT, now)
            error = self.sessions.get(session_id, CAPTCHA_ERROR)
            self.sessions.delete(session_id, CAPTCHA_ERROR)

        logger.info(
            f"Challenge issued for session {session_tag(session_id)} length={generated.display.length}"
        )
        return IssueResult(
            challenge=IssuedChallenge(
                display=generated.display,
                expires_in=int(self.challenge_ttl),
                error=error,
            )
        )

    def submit(self, session_id: str, answer: Optional[str]) -> SubmitResult:
        with self.sessions.lock(session_id):
            now = self._now()
            if self._is_verified(session_id, now):
                return SubmitResult(SubmitOutcome.ALREADY_VERIFIED, self.landing_path)

            try:
                self._check_answer(session_id, answer, now)
            except (ChallengeExpired, ChallengeMismatch) as exc:
                # A failed attempt burns the challenge; the next render issues a new one.
                self.sessions.delete(session_id, CAPTCHA_HASH, CAPTCHA_GENERATED_AT)
                self.sessions.set(session_id, CAPTCHA_ERROR, exc.code)
                logger.warning(f"Verification failed for session {session_tag(session_id)} reason={exc.code}")
                return SubmitResult(SubmitOutcome(exc.code), f"{self.challenge_path}?error={exc.code}")

            self.sessions.set(session_id, CAPTCHA_PASSED, True)
            self.sessions.set(session_id, CAPTCHA_PASSED_AT, now)
            self.sessions.delete(session_id, CAPTCHA_HASH, CAPTCHA_GENERATED_AT, CAPTCHA_ERROR)
            target = self.sessions.get(session_id, ORIGINAL_PATH) or self.landing_path
            self.sessions.delete(session_id, ORIGINAL_PATH)

        logger.info(f"Verification passed for session {session_tag(session_id)}")
        return SubmitResult(SubmitOutcome.VERIFIED, target)

    def _check_answer(self, session_id: str, answer: Optional[str], now: float) -> None:
        secret_digest = self.sessions.get(session_id, CAPTCHA_HASH)
        issued_at = self.sessions.get(session_id, CAPTCHA_GENERATED_AT)
        if secret_digest is None or issued_at is None:
            raise ChallengeExpired()
        if now - issued_at > self.challenge_ttl:
            raise ChallengeExpired()
        if not validate(answer, secret_digest):
            raise ChallengeMismatch()

    def status(self, session_id: str) -> VerificationStatus:
        with self.sessions.lock(session_id):
            now = self._now()
            if not self._is_verified(session_id, now):
                return VerificationStatus(verified=False)
            passed_at = self.sessions.get(session_id, CAPTCHA_PASSED_AT)
        remaining = max(0, int(passed_at + self.verified_ttl - now))
        return VerificationStatus(verified=True, verified_at=passed_at, seconds_remaining=remaining)


__all__ = [
    "AccessGate",
    "Decision",
    "GateResult",
    "IssueResult",
    "IssuedChallenge",
    "SubmitOutcome",
    "SubmitResult",
    "VerificationStatus",
]
