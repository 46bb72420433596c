"""
API Router for TokenVault Token Management

Handlers that seal vaults or compute keyed hashes are plain functions so
that FastAPI runs them in its threadpool instead of on the event loop.
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..auth.api_key import verify_api_key
from ..auth.principal import get_principal
from ..services.tokens import (
    ActionInfo,
    ConstraintViolationError,
    CryptoError,
    NotFoundError,
    PartialFailureError,
    PersistenceError,
    SessionKeyError,
    TokenAction,
    TokenFilter,
    ValidationError,
    VerificationError,
)
from ..services.tokens.token_models import (
    TokenBatchDeleteRequest,
    TokenDeleteResponse,
    TokenIssueRequest,
    TokenListResponse,
    TokenLookupRequest,
    TokenRefreshRequest,
    TokenResponse,
    TokenUpdateRequest,
    TokenVerifyRequest,
    TokenVerifyResponse,
)
from .deps import get_token_manager

log = structlog.get_logger()

router = APIRouter(
    prefix="/tokens",
    tags=["tokens"],
    dependencies=[Depends(verify_api_key)],
)


@contextmanager
def _service_errors(operation: str) -> Iterator[None]:
    """Translate service exceptions into HTTP errors"""
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except SessionKeyError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConstraintViolationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except PersistenceError as e:
        log.error("token.store_unavailable", operation=operation, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Token store unavailable"
        )
    except CryptoError as e:
        log.error("token.crypto_failed", operation=operation, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {operation} token"
        )


@router.get(
    "/actions",
    response_model=List[ActionInfo],
    summary="List token actions",
    description="Actions a token may grant and whether each requires a secret"
)
async def list_token_actions() -> List[ActionInfo]:
    return get_token_manager().token_actions()


@router.post(
    "",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue API token",
    description="Issue a token granting one action to a user"
)
def issue_token(
    request: TokenIssueRequest,
    principal: int = Depends(get_principal)
) -> TokenResponse:
    """
    Issue a new API token

    - **action_id**: Capability the token grants
    - **user_id**: Owner of the token
    - **secret**: Required for sensitive actions; sealed into the vault
    - **mode**: Optional "reuse" or "rotate" override

    Sensitive actions need a live session for the acting principal.
    """
    with _service_errors("issue"):
        record = get_token_manager().issue(
            action_id=request.action_id,
            user_id=request.user_id,
            principal=principal,
            secret=request.secret,
            mode=request.mode,
        )
    return TokenResponse.from_record(record)


@router.get(
    "",
    response_model=TokenListResponse,
    summary="List tokens"
)
async def list_tokens(
    user_id: Optional[int] = None,
    action_id: Optional[TokenAction] = None,
    created_by: Optional[int] = None
) -> TokenListResponse:
    with _service_errors("list"):
        records = get_token_manager().list_all(
            TokenFilter(user_id=user_id, action_id=action_id, created_by=created_by)
        )
    return TokenListResponse(
        total=len(records),
        tokens=[TokenResponse.from_record(r) for r in records]
    )


@router.post(
    "/lookup",
    response_model=TokenResponse,
    summary="Find token",
    description="Find a token by the action it grants and its value"
)
async def lookup_token(request: TokenLookupRequest) -> TokenResponse:
    with _service_errors("lookup"):
        record = get_token_manager().lookup(request.action_id, request.token_value)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Token not found")
    return TokenResponse.from_record(record)


@router.post(
    "/verify",
    response_model=TokenVerifyResponse,
    summary="Verify token",
    description="Check a token value and, for sensitive actions, its secret"
)
def verify_token(request: TokenVerifyRequest) -> TokenVerifyResponse:
    try:
        with _service_errors("verify"):
            record = get_token_manager().verify(
                request.action_id, request.token_value, request.secret
            )
    except VerificationError as e:
        return TokenVerifyResponse(valid=False, reason=str(e))
    return TokenVerifyResponse(valid=True, token_id=record.id)


@router.post(
    "/batch-delete",
    response_model=TokenDeleteResponse,
    summary="Revoke tokens",
    description="Revoke several tokens; a partial result answers 409 with the count"
)
async def revoke_tokens(request: TokenBatchDeleteRequest):
    try:
        with _service_errors("revoke"):
            count = get_token_manager().revoke_batch(request.ids)
    except PartialFailureError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(e),
                "deleted": e.count,
                "requested": e.requested,
            }
        )
    return TokenDeleteResponse(deleted=count)


@router.delete(
    "/users/{user_id}",
    response_model=TokenDeleteResponse,
    summary="Revoke user tokens"
)
async def revoke_user_tokens(user_id: int) -> TokenDeleteResponse:
    with _service_errors("revoke"):
        count = get_token_manager().revoke_user(user_id)
    return TokenDeleteResponse(deleted=count)


@router.get(
    "/{token_id}",
    response_model=TokenResponse,
    summary="Get token"
)
async def get_token(token_id: int) -> TokenResponse:
    with _service_errors("get"):
        record = get_token_manager().get_by_id(token_id)
    return TokenResponse.from_record(record)


@router.put(
    "/{token_id}",
    response_model=TokenResponse,
    summary="Update token",
    description="Change a token's action or secret, keeping its value"
)
def update_token(
    token_id: int,
    request: TokenUpdateRequest,
    principal: int = Depends(get_principal)
) -> TokenResponse:
    manager = get_token_manager()
    with _service_errors("update"):
        record = manager.get_by_id(token_id)
        updated = manager.update(
            record.model_copy(update={"action_id": request.action_id}),
            principal=principal,
            secret=request.secret,
        )
    return TokenResponse.from_record(updated)


@router.post(
    "/{token_id}/refresh",
    response_model=TokenResponse,
    summary="Refresh token",
    description="Rotate the token value of the owner's tokens"
)
def refresh_token(
    token_id: int,
    request: TokenRefreshRequest,
    principal: int = Depends(get_principal)
) -> TokenResponse:
    manager = get_token_manager()
    with _service_errors("refresh"):
        record = manager.get_by_id(token_id)
        refreshed = manager.refresh(record, principal=principal, secret=request.secret)
    return TokenResponse.from_record(refreshed)


@router.delete(
    "/{token_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke token"
)
async def revoke_token(token_id: int) -> Response:
    """
    Revoke a token

    Returns 204 No Content on success, 404 if token not found.
    """
    with _service_errors("revoke"):
        get_token_manager().revoke(token_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
