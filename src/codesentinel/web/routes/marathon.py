"""Marathon control endpoints for CodeSentinel.

    GET  /marathon/status      control state snapshot
    POST /marathon/start       begin or resume automatic phase execution
    POST /marathon/stop        halt automatic advancement
    POST /marathon/reset       hard reset, gated on {"confirm": true}
    POST /marathon/credential  set the analyzer API key

Starting without a credential answers 428 and starting without a target
answers 409; control endpoints answer 401 until an operator logs in.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from codesentinel.logging import get_logger
from codesentinel.orchestrator.marathon import (
    CredentialRequiredError,
    MarathonOrchestrator,
    TargetRequiredError,
)
from codesentinel.review.models import CamelModel, Operator
from codesentinel.web.dependencies import get_orchestrator, require_operator

logger = get_logger(__name__)


class ResetRequest(CamelModel):
    """Hard reset request body; nothing happens unless ``confirm`` is true."""

    confirm: bool = False


class CredentialRequest(CamelModel):
    """Credential request body."""

    api_key: str


def _status_payload(orchestrator: MarathonOrchestrator) -> dict[str, Any]:
    return orchestrator.status().model_dump(mode="json", by_alias=True)


def create_marathon_router() -> APIRouter:
    """Create marathon control routes."""
    router = APIRouter(prefix="/marathon", tags=["marathon"])

    @router.get("/status")
    async def get_status(
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        return _status_payload(orchestrator)

    @router.post("/start")
    async def start(
        _operator: Operator = Depends(require_operator),  # noqa: B008
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        try:
            await orchestrator.start_marathon()
        except CredentialRequiredError as exc:
            logger.info("marathon_start_rejected", reason="credential_missing")
            raise HTTPException(
                status_code=status.HTTP_428_PRECONDITION_REQUIRED, detail=str(exc)
            ) from exc
        except TargetRequiredError as exc:
            logger.info("marathon_start_rejected", reason="no_target")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return _status_payload(orchestrator)

    @router.post("/stop")
    async def stop(
        _operator: Operator = Depends(require_operator),  # noqa: B008
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        await orchestrator.stop()
        return _status_payload(orchestrator)

    @router.post("/reset")
    async def reset(
        body: ResetRequest,
        _operator: Operator = Depends(require_operator),  # noqa: B008
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        performed = await orchestrator.reset_session(lambda: body.confirm)
        return {"reset": performed, "status": _status_payload(orchestrator)}

    @router.post("/credential")
    async def set_credential(
        body: CredentialRequest,
        _operator: Operator = Depends(require_operator),  # noqa: B008
        orchestrator: MarathonOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> dict[str, Any]:
        orchestrator.set_api_key(body.api_key)
        return _status_payload(orchestrator)

    return router
