"""
TokenVault API Token Services Module

Provides secure API token management for the password manager:
- Token issuance, refresh and revocation
- Vault sealing of sensitive secrets under a session key
- Keyed hashing and verification of secrets
- Pluggable token stores (in-memory, Redis)
"""

from .actions import ActionInfo, SensitiveActionPolicy, TokenAction
from .crypto_service import CryptoError, CryptoService, DecryptionError, EncryptionError
from .exceptions import (
    ConstraintViolationError,
    NotFoundError,
    PartialFailureError,
    PersistenceError,
    TokenVaultError,
    ValidationError,
    VerificationError,
)
from .manager import TokenVaultManager, create_default_store
from .redis_store import RedisTokenStore
from .session_keys import InMemorySessionKeyProvider, SessionKeyError, SessionKeyProvider
from .token_models import IssueMode, TokenFilter, TokenRecord
from .token_store import InMemoryTokenStore, TokenStore

__all__ = [
    "ActionInfo",
    "SensitiveActionPolicy",
    "TokenAction",
    "CryptoError",
    "CryptoService",
    "DecryptionError",
    "EncryptionError",
    "ConstraintViolationError",
    "NotFoundError",
    "PartialFailureError",
    "PersistenceError",
    "TokenVaultError",
    "ValidationError",
    "VerificationError",
    "TokenVaultManager",
    "create_default_store",
    "RedisTokenStore",
    "InMemorySessionKeyProvider",
    "SessionKeyError",
    "SessionKeyProvider",
    "IssueMode",
    "TokenFilter",
    "TokenRecord",
    "InMemoryTokenStore",
    "TokenStore",
]
