"""API key authentication for the token management API."""
from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from typing import Optional
import secrets
import structlog
from ..config import get_settings

log = structlog.get_logger()

# API key header scheme
api_key_header = APIKeyHeader(name="X-TokenVault-Key", auto_error=False)


class APIKeyRegistry:
    """
    In-memory registry of API keys allowed to call the service.

    Keys come from the comma-separated API_KEYS setting.
    """

    def __init__(self, keys: str = ""):
        self._keys: set[str] = {k.strip() for k in keys.split(",") if k.strip()}
        log.info("api_keys.loaded", count=len(self._keys))

    def validate(self, key: str) -> bool:
        """Check a key in constant time against every registered key."""
        return any(secrets.compare_digest(key, known) for known in self._keys)

    def add_key(self, key: str):
        self._keys.add(key)
        log.info("api_key.added")

    def remove_key(self, key: str) -> bool:
        if key in self._keys:
            self._keys.discard(key)
            log.info("api_key.removed")
            return True
        return False

    def count(self) -> int:
        return len(self._keys)


# Global registry instance
registry = APIKeyRegistry(get_settings().API_KEYS)


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Dependency to verify the API key from the request header.

    Authentication is enforced only when REQUIRE_AUTH is set and at least
    one key is registered.

    Returns:
        Validated API key, or "anonymous" when auth is not enforced

    Raises:
        HTTPException: If API key is missing or invalid
    """
    if not get_settings().REQUIRE_AUTH or registry.count() == 0:
        log.debug("auth.skipped")
        return "anonymous"

    if not api_key:
        log.warning("auth.failed", reason="missing_key")
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Provide X-TokenVault-Key header.",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if not registry.validate(api_key):
        log.warning("auth.failed", reason="invalid_key")
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    log.debug("auth.success")
    return api_key
