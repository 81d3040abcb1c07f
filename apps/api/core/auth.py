"""
Authentication dependencies.

The Session Gateway verifies the session and stores the identity on the
request; routes read it from here instead of touching tokens themselves.
"""
from typing import Optional
from uuid import UUID

from fastapi import Request

from core.exceptions import AuthError
from core.session_store import SessionStore


def get_current_identity_id(request: Request) -> UUID:
    """
    Identity id attached by the Session Gateway.

    Raises AuthError if the request reached a protected handler without one.
    """
    identity_id: Optional[UUID] = getattr(request.state, "identity_id", None)
    if identity_id is None:
        raise AuthError()
    return identity_id


def get_session_store(request: Request) -> SessionStore:
    """Session store injected on the application."""
    return request.app.state.session_store
