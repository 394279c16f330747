"""Shared FastAPI dependencies."""

import hmac
from collections.abc import Callable
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from .config import settings
from .database.base import SessionLocal
from .notifications.gateway import PushGateway


class AuthRequired(Exception):
    """Raised when the caller is not authenticated. Handled by exception handler in main.py."""

    pass


def get_push_gateway(request: Request) -> PushGateway:
    """Get the push gateway from app state."""
    return request.app.state.push_gateway


def get_current_user_id(request: Request) -> UUID:
    """Authenticated user id from the session cookie set by the journaling app."""
    user_id_str = request.session.get("user_id")
    if not user_id_str:
        raise AuthRequired()
    try:
        return UUID(user_id_str)
    except (ValueError, AttributeError, TypeError):
        request.session.clear()
        raise AuthRequired()


def require_service_key(request: Request) -> None:
    """Guard for /internal endpoints: ``Authorization: Bearer <SERVICE_ROLE_KEY>``."""
    if not settings.service_role_key:
        raise AuthRequired()
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip().encode(), settings.service_role_key.encode()):
        raise AuthRequired()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for work that outlives the request (background tasks)."""
    return SessionLocal
