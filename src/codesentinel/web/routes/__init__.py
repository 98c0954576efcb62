"""FastAPI route definitions for the CodeSentinel control API."""

from __future__ import annotations

from codesentinel.web.routes.dashboard import create_dashboard_router
from codesentinel.web.routes.health import (
    HealthResponse,
    ReadinessResponse,
    create_health_router,
)
from codesentinel.web.routes.marathon import (
    CredentialRequest,
    ResetRequest,
    create_marathon_router,
)
from codesentinel.web.routes.session import (
    LoginRequest,
    TargetRequest,
    create_session_router,
)

__all__ = [
    "create_dashboard_router",
    "create_health_router",
    "create_marathon_router",
    "create_session_router",
    "CredentialRequest",
    "HealthResponse",
    "LoginRequest",
    "ReadinessResponse",
    "ResetRequest",
    "TargetRequest",
]
