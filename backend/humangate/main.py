# backend/humangate/main.py
import asyncio
import time
from contextlib import asynccontextmanager, suppress
from typing import Callable, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool
from starlette.responses import Response

from humangate.core.settings import Settings, get_settings
from humangate.errors import GateError, SessionUnavailable
from humangate.routers.verify import build_router
from humangate.security import client_identifier
from humangate.security.gate import AccessGate, Decision
from humangate.security.logger import gate_logger as logger
from humangate.security.rate_limit import RateLimiter
from humangate.security.sessions import InMemorySessionStore, SessionStore

# ---- Default security headers ----
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "frame-ancestors 'none'; "
        "object-src 'none'; "
        "base-uri 'self'; "
        "form-action 'self'"
    ),
}
# NOTE: HSTS only takes effect when served over HTTPS (enable at your reverse proxy in prod)
STRICT_TRANSPORT_SECURITY = "max-age=31536000; includeSubDomains"


def sweep_once(gate: AccessGate) -> Tuple[int, int]:
    """Garbage-collect stale rate windows and idle sessions."""
    windows = gate.limiter.sweep()
    sessions = gate.sessions.sweep()
    logger.info(f"Sweep removed {windows} rate windows and {sessions} sessions")
    return windows, sessions


async def _sweep_periodically(gate: AccessGate, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            sweep_once(gate)
        except GateError as exc:
            logger.error(f"Sweep failed: {exc}")


def _session_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": SessionUnavailable.code, "detail": SessionUnavailable.message},
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    sessions: Optional[SessionStore] = None,
    limiter: Optional[RateLimiter] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    settings = settings or get_settings()
    if sessions is None:
        sessions = InMemorySessionStore(settings.session_max_age_seconds, clock=clock)
    if limiter is None:
        limiter = RateLimiter(
            settings.rate_limit_max_requests,
            settings.rate_limit_window_seconds,
            clock=clock,
        )
    gate = AccessGate.from_settings(settings, sessions, limiter, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(_sweep_periodically(gate, settings.sweep_interval_seconds))
        try:
            yield
        finally:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    app = FastAPI(title="Human Verification Gate", lifespan=lifespan)
    app.state.settings = settings
    app.state.gate = gate
    app.state.limiter = limiter
    app.state.sessions = sessions

    @app.exception_handler(SessionUnavailable)
    def _session_unavailable_handler(request: Request, exc: SessionUnavailable) -> JSONResponse:
        logger.error(f"Session store unavailable on {request.url.path}: {exc}")
        return _session_error()

    def _admit(request: Request):
        session_id = request.cookies.get(settings.session_cookie_name)
        if not session_id or not sessions.exists(session_id):
            session_id = sessions.new_id()
        result = gate.evaluate(
            client_identifier(request),
            session_id,
            request.url.path,
            request.url.query,
        )
        return session_id, result

    # ---- Verification gate middleware ----
    @app.middleware("http")
    async def verification_gate(request: Request, call_next):
        try:
            # Store access takes per-session locks; keep it off the event loop.
            session_id, result = await run_in_threadpool(_admit, request)
            request.state.session_id = session_id
        except SessionUnavailable as exc:
            logger.error(f"Session store unavailable on {request.url.path}: {exc}")
            return _session_error()

        if result.decision is Decision.REJECT_RATE_LIMITED:
            return JSONResponse(
                status_code=429,
                content={"error": "too_many_requests", "detail": "Try again later."},
                headers={"Retry-After": str(result.retry_after)},
            )

        if result.decision is Decision.CHALLENGE:
            response: Response = RedirectResponse(url=result.redirect_to, status_code=302)
        else:
            response = await call_next(request)

        # Re-sent on every response so the browser expiry rolls with the store.
        response.set_cookie(
            settings.session_cookie_name,
            session_id,
            max_age=settings.session_max_age_seconds,
            httponly=True,
            secure=settings.session_cookie_secure,
            samesite="strict",
        )
        return response

    # ---- Security headers middleware ----
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        # HSTS (effective only when behind HTTPS)
        response.headers.setdefault("Strict-Transport-Security", STRICT_TRANSPORT_SECURITY)
        return response

    # ---- Health endpoint (used by tests and curl) ----
    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(build_router(settings))

    @app.get(settings.landing_path)
    def landing():
        return {"message": "Welcome! You have successfully passed verification."}

    return app


app = create_app()
