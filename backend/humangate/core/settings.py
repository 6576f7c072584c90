from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

DEFAULT_EXEMPT_PATHS = ["/favicon.ico", "/robots.txt", "/health", "/verification-status"]


class Settings(BaseModel):
    challenge_ttl_seconds: int = Field(default=120)
    verified_ttl_seconds: int = Field(default=3600)
    challenge_min_length: int = Field(default=5)
    challenge_max_length: int = Field(default=7)
    rate_limit_max_requests: int = Field(default=50)
    rate_limit_window_seconds: int = Field(default=600)
    sweep_interval_seconds: int = Field(default=3600)
    session_max_age_seconds: int = Field(default=3600)
    session_cookie_name: str = Field(default="gate_sid")
    session_cookie_secure: bool = Field(default=False)
    challenge_path: str = Field(default="/verify")
    submit_path: str = Field(default="/process-verify")
    status_path: str = Field(default="/verification-status")
    landing_path: str = Field(default="/")
    exempt_paths: List[str] = Field(default_factory=lambda: list(DEFAULT_EXEMPT_PATHS))

    @model_validator(mode="after")
    def _check_ranges(self) -> "Settings":
        positive = {
            "challenge_ttl_seconds": self.challenge_ttl_seconds,
            "verified_ttl_seconds": self.verified_ttl_seconds,
            "challenge_min_length": self.challenge_min_length,
            "rate_limit_max_requests": self.rate_limit_max_requests,
            "rate_limit_window_seconds": self.rate_limit_window_seconds,
            "sweep_interval_seconds": self.sweep_interval_seconds,
            "session_max_age_seconds": self.session_max_age_seconds,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive")
        if self.challenge_min_length > self.challenge_max_length:
            raise ValueError("challenge_min_length must not exceed challenge_max_length")
        if self.session_max_age_seconds < self.verified_ttl_seconds:
            raise ValueError("session_max_age_seconds must be at least verified_ttl_seconds")
        paths = [self.challenge_path, self.submit_path, self.status_path, self.landing_path, *self.exempt_paths]
        for path in paths:
            if not path.startswith("/"):
                raise ValueError(f"path {path!r} must start with '/'")
        return self


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _split_paths(raw: Optional[str]) -> List[str]:
    if not raw:
        return list(DEFAULT_EXEMPT_PATHS)
    return [p.strip() for p in raw.split(",") if p.strip()]


def _load_settings() -> Settings:
    return Settings(
        challenge_ttl_seconds=int(_env("GATE_CHALLENGE_TTL_SECONDS", "120")),
        verified_ttl_seconds=int(_env("GATE_VERIFIED_TTL_SECONDS", "3600")),
        challenge_min_length=int(_env("GATE_CHALLENGE_MIN_LENGTH", "5")),
        challenge_max_length=int(_env("GATE_CHALLENGE_MAX_LENGTH", "7")),
        rate_limit_max_requests=int(_env("RATE_LIMIT_MAX_REQUESTS", "50")),
        rate_limit_window_seconds=int(_env("RATE_LIMIT_WINDOW_SECONDS", "600")),
        sweep_interval_seconds=int(_env("SWEEP_INTERVAL_SECONDS", "3600")),
        session_max_age_seconds=int(_env("SESSION_MAX_AGE_SECONDS", "3600")),
        session_cookie_name=_env("SESSION_COOKIE_NAME", "gate_sid"),
        session_cookie_secure=_env("SESSION_COOKIE_SECURE", "0") == "1",
        challenge_path=_env("GATE_CHALLENGE_PATH", "/verify"),
        submit_path=_env("GATE_SUBMIT_PATH", "/process-verify"),
        status_path=_env("GATE_STATUS_PATH", "/verification-status"),
        landing_path=_env("GATE_LANDING_PATH", "/"),
        exempt_paths=_split_paths(_env("GATE_EXEMPT_PATHS")),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return _load_settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


__all__ = ["Settings", "get_settings", "reload_settings"]
