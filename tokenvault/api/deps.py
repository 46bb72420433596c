"""
Shared service instances for the HTTP layer
"""

from ..config import get_settings
from ..services.tokens import (
    CryptoService,
    InMemorySessionKeyProvider,
    IssueMode,
    SensitiveActionPolicy,
    TokenVaultManager,
    create_default_store,
)

settings = get_settings()

# Global service instances
_session_keys = InMemorySessionKeyProvider(ttl_seconds=settings.SESSION_TTL_SECONDS)
_token_manager = TokenVaultManager(
    store=create_default_store(settings),
    session_keys=_session_keys,
    crypto_service=CryptoService(hash_iterations=settings.HASH_ITERATIONS),
    policy=SensitiveActionPolicy.from_names(settings.SENSITIVE_ACTIONS),
    issue_mode=IssueMode(settings.TOKEN_ISSUE_MODE),
)


def get_token_manager() -> TokenVaultManager:
    """Get the global token manager instance"""
    return _token_manager


def get_session_keys() -> InMemorySessionKeyProvider:
    """Get the global session key provider"""
    return _session_keys
