"""
Session store.

The Session Gateway never keeps tokens in process memory; everything it needs
to know about a session comes from a ``SessionStore``. The default store is
backed by the ``auth_session`` table.

Token model:
- access token: short-lived JWT carrying ``sub`` (athlete id) and ``sid``
  (session id)
- refresh token: opaque random string, stored as a SHA-256 hash and rotated
  on every refresh
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import DataStoreError
from core.security import (
    REFRESH_TOKEN_EXPIRE_DAYS,
    TokenStatus,
    create_access_token,
    generate_refresh_token,
    hash_token,
    inspect_access_token,
)
from models import AuthSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionTokens:
    """A freshly issued access/refresh pair."""
    identity_id: UUID
    session_id: UUID
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


@dataclass(frozen=True)
class AccessCheck:
    """Result of validating an access token against the store."""
    status: TokenStatus
    identity_id: Optional[UUID] = None
    session_id: Optional[UUID] = None

    @property
    def is_valid(self) -> bool:
        return self.status is TokenStatus.VALID


class SessionStore(Protocol):
    def create_session(self, identity_id: UUID) -> SessionTokens: ...

    def validate_access_token(self, token: Optional[str]) -> AccessCheck: ...

    def refresh(self, refresh_token: Optional[str], session_id: Optional[UUID] = None) -> Optional[SessionTokens]: ...

    def revoke(self, refresh_token: Optional[str] = None, access_token: Optional[str] = None) -> bool: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_uuid(value) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class DatabaseSessionStore:
    """SessionStore backed by the ``auth_session`` table."""

    def __init__(self, session_factory: Callable[[], Session], clock: Callable[[], datetime] = _utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def _issue_access_token(self, identity_id: UUID, session_id: UUID) -> str:
        return create_access_token({"sub": str(identity_id), "sid": str(session_id)})

    def create_session(self, identity_id: UUID) -> SessionTokens:
        """Start a new session. Called by the login surface."""
        refresh_token = generate_refresh_token()
        expires_at = self._clock() + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
        db = self._session_factory()
        try:
            row = AuthSession(
                athlete_id=identity_id,
                refresh_token_hash=hash_token(refresh_token),
                refresh_expires_at=expires_at,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return SessionTokens(
                identity_id=identity_id,
                session_id=row.id,
                access_token=self._issue_access_token(identity_id, row.id),
                refresh_token=refresh_token,
                refresh_expires_at=expires_at,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create session: {type(e).__name__}")
            raise DataStoreError("Could not create session") from e
        finally:
            db.close()

    def validate_access_token(self, token: Optional[str]) -> AccessCheck:
        """
        Check signature and expiry, then confirm the session is still live.

        A well-formed token whose session has been revoked is INVALID. Expired
        tokens are reported as EXPIRED, with their claims, without a store
        lookup; the refresh step decides whether the session survives.
        """
        token_status, payload = inspect_access_token(token)
        if token_status not in (TokenStatus.VALID, TokenStatus.EXPIRED):
            return AccessCheck(status=token_status)

        identity_id = _parse_uuid(payload.get("sub"))
        session_id = _parse_uuid(payload.get("sid"))
        if identity_id is None or session_id is None:
            return AccessCheck(status=TokenStatus.INVALID)
        if token_status is TokenStatus.EXPIRED:
            return AccessCheck(status=TokenStatus.EXPIRED, identity_id=identity_id, session_id=session_id)

        db = self._session_factory()
        try:
            row = db.get(AuthSession, session_id)
        except SQLAlchemyError as e:
            logger.error(f"Session lookup failed: {type(e).__name__}")
            return AccessCheck(status=TokenStatus.INVALID)
        finally:
            db.close()

        if row is None or row.revoked_at is not None or row.athlete_id != identity_id:
            return AccessCheck(status=TokenStatus.INVALID)
        return AccessCheck(status=TokenStatus.VALID, identity_id=identity_id, session_id=session_id)

    def refresh(self, refresh_token: Optional[str], session_id: Optional[UUID] = None) -> Optional[SessionTokens]:
        """
        Rotate a refresh token and issue a new access token.

        Returns None when the refresh token is unknown, revoked, past its
        validity window, or belongs to a session other than ``session_id``.
        Rotation is a conditional update on the old hash, so of two concurrent
        refreshes of the same token only one succeeds.
        """
        if not refresh_token:
            return None

        old_hash = hash_token(refresh_token)
        db = self._session_factory()
        try:
            row = (
                db.query(AuthSession)
                .filter(AuthSession.refresh_token_hash == old_hash)
                .first()
            )
            if row is None or row.revoked_at is not None:
                return None
            if session_id is not None and row.id != session_id:
                logger.warning(
                    "Refresh token presented with another session's access token",
                    extra={"extra_fields": {"session_id": str(row.id)}},
                )
                return None

            now = self._clock()
            if _as_aware(row.refresh_expires_at) <= now:
                row.revoked_at = now
                db.commit()
                return None

            new_refresh_token = generate_refresh_token()
            rotated = (
                db.query(AuthSession)
                .filter(
                    AuthSession.id == row.id,
                    AuthSession.refresh_token_hash == old_hash,
                    AuthSession.revoked_at.is_(None),
                )
                .update(
                    {
                        AuthSession.refresh_token_hash: hash_token(new_refresh_token),
                        AuthSession.last_refreshed_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if rotated != 1:
                db.rollback()
                return None
            db.commit()

            return SessionTokens(
                identity_id=row.athlete_id,
                session_id=row.id,
                access_token=self._issue_access_token(row.athlete_id, row.id),
                refresh_token=new_refresh_token,
                refresh_expires_at=_as_aware(row.refresh_expires_at),
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Session refresh failed: {type(e).__name__}")
            return None
        finally:
            db.close()

    def revoke(self, refresh_token: Optional[str] = None, access_token: Optional[str] = None) -> bool:
        """
        Terminate the session identified by either token.

        Returns True when a live session was revoked, False when there was
        nothing to revoke. Raises DataStoreError if the store fails.
        """
        session_id = None
        if access_token:
            token_status, payload = inspect_access_token(access_token)
            if token_status in (TokenStatus.VALID, TokenStatus.EXPIRED):
                session_id = _parse_uuid(payload.get("sid"))

        db = self._session_factory()
        try:
            row = None
            if refresh_token:
                row = (
                    db.query(AuthSession)
                    .filter(AuthSession.refresh_token_hash == hash_token(refresh_token))
                    .first()
                )
            if row is None and session_id is not None:
                row = db.get(AuthSession, session_id)
            if row is None or row.revoked_at is not None:
                return False
            row.revoked_at = self._clock()
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Session revoke failed: {type(e).__name__}")
            raise DataStoreError("Could not terminate session") from e
        finally:
            db.close()
