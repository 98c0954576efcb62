"""Dashboard summary endpoint for CodeSentinel."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from codesentinel.orchestrator.marathon import MarathonOrchestrator
from codesentinel.review.scoring import dashboard_summary
from codesentinel.web.dependencies import get_orchestrator


def create_dashboard_router() -> APIRouter:
    """Create the dashboard router."""
    router = APIRouter(prefix="/dashboard", tags=["dashboard"])

    @router.get("/summary")
    async def summary(
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        """Headline counts, health scores and marathon status for the overview."""
        payload = dashboard_summary(orchestrator.session.state)
        payload["marathon"] = orchestrator.status().model_dump(mode="json", by_alias=True)
        return payload

    return router
