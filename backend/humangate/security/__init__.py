from fastapi import Request

from humangate.security.gate import AccessGate, Decision
from humangate.security.rate_limit import RateLimiter
from humangate.security.sessions import InMemorySessionStore, SessionStore


def client_identifier(request: Request) -> str:
    # If later behind a proxy, parse X-Forwarded-For here.
    client = request.client
    return client.host if client and client.host else "0.0.0.0"


def session_identifier(request: Request) -> str:
    session_id = getattr(request.state, "session_id", None)
    if not session_id:
        raise RuntimeError("session middleware did not run for this request")
    return session_id


def get_gate(request: Request) -> AccessGate:
    return request.app.state.gate


__all__ = [
    "AccessGate",
    "Decision",
    "InMemorySessionStore",
    "RateLimiter",
    "SessionStore",
    "client_identifier",
    "get_gate",
    "session_identifier",
]
