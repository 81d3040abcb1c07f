"""
Authentication API endpoints.

Credential issuance (login/signup) is handled by the login surface; this
router only terminates sessions.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from core.auth import get_session_store
from core.exceptions import DataStoreError
from core.session_gateway import GatewayRequest, clear_session_cookies
from core.session_store import SessionStore
from schemas import LogoutResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/logout", response_model=LogoutResponse)
async def logout(request: Request, store: SessionStore = Depends(get_session_store)):
    """
    Terminate the caller's session.

    Revokes the session identified by the refresh token (or, failing that,
    the access token) and clears the session cookies. Logging out without a
    session is a no-op success.
    """
    carrier = GatewayRequest(
        path=request.url.path,
        cookies=request.cookies,
        headers=request.headers,
    )
    try:
        revoked = await run_in_threadpool(
            store.revoke,
            refresh_token=carrier.refresh_token,
            access_token=carrier.access_token,
        )
    except DataStoreError as e:
        logger.error(f"Logout failed: {e.detail}")
        return JSONResponse(status_code=400, content={"error": e.detail})

    logger.info("Logout", extra={"extra_fields": {"session_revoked": revoked}})
    response = JSONResponse(content={"success": True})
    clear_session_cookies(response)
    return response
