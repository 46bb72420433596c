"""
API Router for principal sessions

A session holds the key used to seal vaults of sensitive tokens.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel

from ..auth.api_key import verify_api_key
from ..auth.principal import get_principal
from .deps import get_session_keys

router = APIRouter(
    prefix="/sessions",
    tags=["sessions"],
    dependencies=[Depends(verify_api_key)],
)


class SessionOpenRequest(BaseModel):
    session_id: Optional[str] = None


class SessionResponse(BaseModel):
    principal: int
    session_id: str


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open session",
    description="Start or resume the acting principal's session"
)
async def open_session(
    request: SessionOpenRequest,
    principal: int = Depends(get_principal)
) -> SessionResponse:
    session_id = get_session_keys().open_session(principal, session_id=request.session_id)
    return SessionResponse(principal=principal, session_id=session_id)


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close session",
    description="End the acting principal's session; its vaults can no longer be opened"
)
async def close_session(principal: int = Depends(get_principal)) -> Response:
    if not get_session_keys().close_session(principal):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active session")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
