"""FastAPI dependencies shared by the CodeSentinel routers."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from codesentinel.orchestrator.marathon import MarathonOrchestrator
from codesentinel.review.models import Operator


def get_orchestrator(request: Request) -> MarathonOrchestrator:
    """Retrieve the orchestrator from app state."""
    return request.app.state.orchestrator  # type: ignore[no-any-return]


def require_operator(
    orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> Operator:
    """Reject the request with 401 unless an operator is logged in."""
    operator = orchestrator.session.operator
    if operator is None or not operator.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Log in before controlling the review",
        )
    return operator
