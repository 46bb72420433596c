"""
Session key providers used to seal token vaults
"""

import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import structlog

from .crypto_service import CryptoError, CryptoService

log = structlog.get_logger()

SESSION_KEY_CONTEXT = "tokenvault-session"


class SessionKeyError(CryptoError):
    """Raised when no live session key exists for a principal"""
    pass


class SessionKeyProvider(ABC):
    """Abstract source of session-scoped symmetric keys."""

    @abstractmethod
    def current_key(self, principal: int) -> bytes:
        """
        Return the key of the principal's live session.

        Args:
            principal: Acting user id

        Returns:
            Raw 32-byte key

        Raises:
            SessionKeyError: If the principal has no live session
        """
        pass


@dataclass
class _Session:
    session_id: str
    key: bytes
    expires_at: datetime


class InMemorySessionKeyProvider(SessionKeyProvider):
    """
    Thread-safe in-memory session registry.

    Keys are derived with HKDF from the session id, so a vault sealed in a
    session can only be opened again while that session is alive, or by
    whoever still holds its session id.
    """

    def __init__(self, ttl_seconds: int = 3600):
        """
        Initialize session registry

        Args:
            ttl_seconds: Session lifetime
        """
        if ttl_seconds < 1:
            raise ValueError("Session TTL must be at least 1 second")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._sessions: Dict[int, _Session] = {}
        self._lock = threading.RLock()

    def open_session(self, principal: int, session_id: Optional[str] = None) -> str:
        """
        Start (or replace) the principal's session.

        Args:
            principal: User id
            session_id: Existing session id to resume; a new uuid otherwise

        Returns:
            The session id
        """
        session_id = session_id or str(uuid.uuid4())
        key = CryptoService.derive_key(session_id.encode("utf-8"), SESSION_KEY_CONTEXT)
        with self._lock:
            self._sessions[principal] = _Session(
                session_id=session_id,
                key=key,
                expires_at=datetime.now(timezone.utc) + self._ttl,
            )
        log.info("session.opened", principal=principal)
        return session_id

    def close_session(self, principal: int) -> bool:
        """
        End the principal's session.

        Returns:
            True if a session was closed, False if none existed
        """
        with self._lock:
            closed = self._sessions.pop(principal, None) is not None
        if closed:
            log.info("session.closed", principal=principal)
        return closed

    def has_session(self, principal: int) -> bool:
        return self._get_live(principal) is not None

    def current_key(self, principal: int) -> bytes:
        session = self._get_live(principal)
        if session is None:
            log.warning("session.key_unavailable", principal=principal)
            raise SessionKeyError(f"No active session for principal {principal}")
        return session.key

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def _get_live(self, principal: int) -> Optional[_Session]:
        with self._lock:
            session = self._sessions.get(principal)
            if session is None:
                return None
            if session.expires_at <= datetime.now(timezone.utc):
                del self._sessions[principal]
                log.info("session.expired", principal=principal)
                return None
            return session
