"""
app/api/deps.py

Purpose: Shared FastAPI dependencies

- FlowContext built at startup (app.state.flow_context)
- Admin key check for operator endpoints
"""

from typing import Optional

from fastapi import Header, Request

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.flow.context import FlowContext


def get_flow_context(request: Request) -> FlowContext:
    ctx = getattr(request.app.state, "flow_context", None)
    if ctx is None:
        raise RuntimeError("Flow context not initialized. Is the application lifespan running?")
    return ctx


def require_admin_key(x_admin_key: Optional[str] = Header(None)) -> None:
    """
    Guards operator endpoints.

    Without ADMIN_API_KEY the endpoints are open outside production
    and closed in production.
    """
    if not settings.ADMIN_API_KEY:
        if settings.is_production:
            raise AuthenticationError("Admin endpoints are disabled: ADMIN_API_KEY is not configured")
        return
    if x_admin_key != settings.ADMIN_API_KEY:
        raise AuthenticationError("Invalid admin key")
