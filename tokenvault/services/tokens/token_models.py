"""
Token models and schemas for API token management
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .actions import TokenAction


class IssueMode(str, Enum):
    """
    How ``issue`` picks the token value.

    REUSE hands out the user's existing token value when one exists,
    ROTATE always generates a fresh one.
    """
    REUSE = "reuse"
    ROTATE = "rotate"


class TokenRecord(BaseModel):
    """
    Persisted API token
    """
    id: Optional[int] = Field(default=None, description="Store-assigned identifier")
    user_id: int = Field(..., description="Owning principal")
    action_id: TokenAction = Field(..., description="Capability granted by the token")
    token_value: str = Field(..., min_length=1, description="Bearer credential")
    verification_hash: Optional[str] = Field(
        default=None,
        description="Keyed hash of the secret, sensitive actions only"
    )
    vault: Optional[str] = Field(
        default=None,
        description="Sealed secret || token_value, sensitive actions only"
    )
    created_by: Optional[int] = Field(default=None, description="Issuing principal")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_vault(self) -> bool:
        return self.vault is not None


class TokenFilter(BaseModel):
    """
    Optional criteria for listing tokens; unset fields match everything
    """
    user_id: Optional[int] = None
    action_id: Optional[TokenAction] = None
    created_by: Optional[int] = None

    def matches(self, record: TokenRecord) -> bool:
        if self.user_id is not None and record.user_id != self.user_id:
            return False
        if self.action_id is not None and record.action_id != self.action_id:
            return False
        if self.created_by is not None and record.created_by != self.created_by:
            return False
        return True


class TokenIssueRequest(BaseModel):
    """
    Request to issue a new API token
    """
    action_id: TokenAction
    user_id: int = Field(..., ge=1)
    secret: Optional[str] = Field(
        default=None,
        description="Secret sealed into the vault for sensitive actions"
    )
    mode: Optional[IssueMode] = Field(
        default=None,
        description="Override the configured issue mode for this call"
    )


class TokenUpdateRequest(BaseModel):
    """
    Request to change a token's action or secret, keeping its value
    """
    action_id: TokenAction
    secret: Optional[str] = None


class TokenRefreshRequest(BaseModel):
    """
    Request to rotate a token's bearer value
    """
    secret: Optional[str] = None


class TokenLookupRequest(BaseModel):
    """
    Request to find a token by its capability and value
    """
    action_id: TokenAction
    token_value: str = Field(..., min_length=1)


class TokenVerifyRequest(TokenLookupRequest):
    """
    Request to check a token value and secret
    """
    secret: Optional[str] = None


class TokenVerifyResponse(BaseModel):
    valid: bool
    token_id: Optional[int] = None
    reason: Optional[str] = None


class TokenBatchDeleteRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1)


class TokenDeleteResponse(BaseModel):
    deleted: int


class TokenResponse(BaseModel):
    """
    Public view of a token; never includes the vault or the hash
    """
    id: int
    user_id: int
    action_id: TokenAction
    token_value: str
    has_vault: bool
    created_by: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: TokenRecord) -> "TokenResponse":
        return cls(
            id=record.id,
            user_id=record.user_id,
            action_id=record.action_id,
            token_value=record.token_value,
            has_vault=record.has_vault,
            created_by=record.created_by,
            created_at=record.created_at,
        )


class TokenListResponse(BaseModel):
    total: int
    tokens: list[TokenResponse]
