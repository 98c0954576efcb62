"""Web interface for CodeSentinel.

This module provides the FastAPI control API used by the dashboard to log
in, select a target, drive the marathon and read the accumulated review.
"""

from __future__ import annotations

from codesentinel.web.app import create_app
from codesentinel.web.middleware import RequestLoggingMiddleware

__all__ = [
    "create_app",
    "RequestLoggingMiddleware",
]
