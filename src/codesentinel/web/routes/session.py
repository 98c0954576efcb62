"""Session endpoints for CodeSentinel.

Mocked operator login, target selection and logout, plus read access to
the current session and its activity log.

    GET  /session/        current session (operator, target, review state)
    POST /session/login   log in with an e-mail address
    POST /session/target  select a repository URL or archive as the target
    POST /session/logout  drop the session and clear durable storage
    GET  /session/logs    most recent activity log entries
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import model_validator

from codesentinel.logging import get_logger
from codesentinel.orchestrator.marathon import MarathonOrchestrator
from codesentinel.review.activity_log import tail
from codesentinel.review.intake import (
    operator_from_email,
    target_from_archive,
    target_from_repository_url,
)
from codesentinel.review.models import CamelModel, Operator
from codesentinel.web.dependencies import get_orchestrator, require_operator

logger = get_logger(__name__)


class LoginRequest(CamelModel):
    """Login request body."""

    email: str


class TargetRequest(CamelModel):
    """Target selection request body; exactly one source must be given.

    Attributes:
        repository_url: Repository URL (GITHUB target)
        archive_name: Uploaded archive filename (ZIP target)
        content: Optional source text to analyze instead of the demo snippet
    """

    repository_url: str | None = None
    archive_name: str | None = None
    content: str | None = None

    @model_validator(mode="after")
    def check_single_source(self) -> TargetRequest:
        if bool(self.repository_url) == bool(self.archive_name):
            raise ValueError("Provide exactly one of repositoryUrl or archiveName")
        return self


def _session_payload(orchestrator: MarathonOrchestrator) -> dict[str, Any]:
    return orchestrator.session.model_dump(mode="json", by_alias=True)


def create_session_router() -> APIRouter:
    """Create session routes."""
    router = APIRouter(prefix="/session", tags=["session"])

    @router.get("/")
    async def get_session(
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        return _session_payload(orchestrator)

    @router.post("/login")
    async def login(
        body: LoginRequest,
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        """Log in with an e-mail address (no real authentication)."""
        try:
            operator = operator_from_email(body.email)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
            ) from exc

        await orchestrator.login(operator)
        return _session_payload(orchestrator)

    @router.post("/target")
    async def select_target(
        body: TargetRequest,
        _operator: Operator = Depends(require_operator),  # noqa: B008
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        """Select the review target; resets the review state to INIT."""
        try:
            if body.repository_url:
                target = target_from_repository_url(body.repository_url, content=body.content)
            else:
                target = target_from_archive(body.archive_name or "", content=body.content)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
            ) from exc

        await orchestrator.select_target(target)
        return _session_payload(orchestrator)

    @router.post("/logout")
    async def logout(
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        await orchestrator.logout()
        return {"status": "logged_out"}

    @router.get("/logs")
    async def get_logs(
        limit: int | None = Query(None, ge=1, le=1000, description="Most recent entries only"),
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> list[dict[str, Any]]:
        entries = tail(orchestrator.session.state.logs, limit)
        return [entry.model_dump(mode="json", by_alias=True) for entry in entries]

    return router
