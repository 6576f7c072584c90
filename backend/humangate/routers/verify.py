# backend/humangate/routers/verify.py
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from humangate.core.settings import Settings
from humangate.models import ChallengeResponse, StatusResponse, SubmissionPayload
from humangate.security import get_gate, session_identifier
from humangate.security.gate import AccessGate

FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _redirect(target: str) -> RedirectResponse:
    return RedirectResponse(url=target, status_code=status.HTTP_302_FOUND)


async def _read_answer(request: Request) -> Optional[str]:
    """Pull ``answer`` from a JSON or form body; ``None`` when absent or unreadable."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    answer = None
    if content_type == "application/json":
        try:
            payload = SubmissionPayload.model_validate(await request.json())
        except (ValueError, ValidationError):
            return None
        answer = payload.answer
    elif content_type in FORM_TYPES:
        form = await request.form()
        value = form.get("answer")
        if isinstance(value, str):
            answer = value
    if answer is None:
        return None
    return answer.strip()


def build_router(settings: Settings) -> APIRouter:
    """Verification routes, mounted at the configured paths."""
    router = APIRouter(tags=["verify"])

    def issue_challenge(request: Request, gate: AccessGate = Depends(get_gate)):
        result = gate.issue(session_identifier(request))
        if result.redirect_to is not None:
            return _redirect(result.redirect_to)
        return ChallengeResponse.from_issued(result.challenge, settings.submit_path)

    async def submit_answer(request: Request, gate: AccessGate = Depends(get_gate)):
        # Any body shape ends in a redirect; a missing answer fails closed.
        answer = await _read_answer(request)
        result = await run_in_threadpool(gate.submit, session_identifier(request), answer)
        return _redirect(result.redirect_to)

    def verification_status(request: Request, gate: AccessGate = Depends(get_gate)) -> StatusResponse:
        return StatusResponse.from_status(gate.status(session_identifier(request)))

    router.add_api_route(
        settings.challenge_path,
        issue_challenge,
        methods=["GET"],
        response_model=None,
    )
    router.add_api_route(
        settings.submit_path,
        submit_answer,
        methods=["POST"],
        response_model=None,
    )
    router.add_api_route(
        settings.status_path,
        verification_status,
        methods=["GET"],
        response_model=StatusResponse,
    )
    return router
