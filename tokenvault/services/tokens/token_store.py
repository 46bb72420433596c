"""
Token store interface and the in-memory implementation
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

import structlog

from .actions import TokenAction
from .exceptions import ConstraintViolationError, ValidationError
from .token_models import TokenFilter, TokenRecord

log = structlog.get_logger()


class TokenStore(ABC):
    """Abstract persistence for token records."""

    @abstractmethod
    def find_by_user_id(self, user_id: int) -> Optional[str]:
        """
        Return the current token value of a user, if any.

        When a user holds several records the most recently created one wins.
        """
        pass

    @abstractmethod
    def find_by_action_and_token(
        self,
        action_id: TokenAction,
        token_value: str
    ) -> Optional[TokenRecord]:
        """Return the record matching both the action and the token value."""
        pass

    @abstractmethod
    def get_by_id(self, record_id: int) -> Optional[TokenRecord]:
        pass

    @abstractmethod
    def create(self, record: TokenRecord) -> TokenRecord:
        """
        Persist a new record and assign its id.

        Raises:
            ConstraintViolationError: If the user already holds a token for the action
        """
        pass

    @abstractmethod
    def update(self, record: TokenRecord) -> int:
        """
        Replace a stored record by id.

        Returns:
            Number of records updated (0 or 1)

        Raises:
            ConstraintViolationError: If the change clashes with another record
        """
        pass

    @abstractmethod
    def rotate(
        self,
        user_id: int,
        token_value: str,
        vault: Optional[str],
        verification_hash: Optional[str]
    ) -> int:
        """
        Atomically rotate every record of a user.

        All records receive the new token value; records that carry a vault
        also receive the new vault and verification hash. Readers never see
        the new token paired with the old vault or the reverse.

        Returns:
            Number of records rotated

        Raises:
            ValidationError: If a record carrying a vault would be rotated
                without a new vault; nothing is written
        """
        pass

    @abstractmethod
    def delete(self, record_id: int) -> int:
        pass

    @abstractmethod
    def delete_batch(self, record_ids: Iterable[int]) -> int:
        pass

    @abstractmethod
    def delete_by_user_id(self, user_id: int) -> int:
        pass

    @abstractmethod
    def list_all(self, token_filter: Optional[TokenFilter] = None) -> list[TokenRecord]:
        pass

    @abstractmethod
    def health_check(self) -> bool:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class InMemoryTokenStore(TokenStore):
    """
    Thread-safe in-memory token store
    """

    def __init__(self):
        self._records: Dict[int, TokenRecord] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def find_by_user_id(self, user_id: int) -> Optional[str]:
        with self._lock:
            owned = [r for r in self._records.values() if r.user_id == user_id]
            if not owned:
                return None
            return max(owned, key=lambda r: r.id).token_value

    def find_by_action_and_token(
        self,
        action_id: TokenAction,
        token_value: str
    ) -> Optional[TokenRecord]:
        with self._lock:
            for record in self._records.values():
                if record.action_id == action_id and record.token_value == token_value:
                    return record.model_copy()
            return None

    def get_by_id(self, record_id: int) -> Optional[TokenRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy() if record else None

    def create(self, record: TokenRecord) -> TokenRecord:
        with self._lock:
            self._check_unique(record.user_id, record.action_id)
            stored = record.model_copy(update={"id": self._next_id})
            self._records[stored.id] = stored
            self._next_id += 1
            log.debug("store.created", token_id=stored.id, user_id=stored.user_id)
            return stored.model_copy()

    def update(self, record: TokenRecord) -> int:
        with self._lock:
            if record.id is None or record.id not in self._records:
                return 0
            if self._records[record.id].user_id != record.user_id:
                raise ConstraintViolationError("Token owner cannot be changed")
            self._check_unique(record.user_id, record.action_id, exclude_id=record.id)
            self._records[record.id] = record.model_copy()
            log.debug("store.updated", token_id=record.id)
            return 1

    def rotate(
        self,
        user_id: int,
        token_value: str,
        vault: Optional[str],
        verification_hash: Optional[str]
    ) -> int:
        with self._lock:
            owned = [r for r in self._records.values() if r.user_id == user_id]
            check_rotation(owned, vault)
            for record in owned:
                changes = {"token_value": token_value}
                if record.vault is not None:
                    changes["vault"] = vault
                    changes["verification_hash"] = verification_hash
                self._records[record.id] = record.model_copy(update=changes)
            log.debug("store.rotated", user_id=user_id, count=len(owned))
            return len(owned)

    def delete(self, record_id: int) -> int:
        with self._lock:
            if self._records.pop(record_id, None) is None:
                return 0
            log.debug("store.deleted", token_id=record_id)
            return 1

    def delete_batch(self, record_ids: Iterable[int]) -> int:
        with self._lock:
            return sum(self.delete(record_id) for record_id in set(record_ids))

    def delete_by_user_id(self, user_id: int) -> int:
        with self._lock:
            owned = [rid for rid, r in self._records.items() if r.user_id == user_id]
            for record_id in owned:
                del self._records[record_id]
            return len(owned)

    def list_all(self, token_filter: Optional[TokenFilter] = None) -> list[TokenRecord]:
        with self._lock:
            records = sorted(self._records.values(), key=lambda r: r.id)
            if token_filter is not None:
                records = [r for r in records if token_filter.matches(r)]
            return [r.model_copy() for r in records]

    def health_check(self) -> bool:
        """In-memory store is always healthy."""
        return True

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            log.info("store.cleared", backend="memory")

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _check_unique(
        self,
        user_id: int,
        action_id: TokenAction,
        exclude_id: Optional[int] = None
    ) -> None:
        for record in self._records.values():
            if record.id == exclude_id:
                continue
            if record.user_id == user_id and record.action_id == action_id:
                raise ConstraintViolationError(
                    f"User {user_id} already holds a token for {TokenAction(action_id).value}"
                )


def check_rotation(records: Iterable[TokenRecord], vault: Optional[str]) -> None:
    """A sealed record must never receive a new token without a new vault."""
    if vault is not None:
        return
    sealed = [r.id for r in records if r.vault is not None]
    if sealed:
        raise ValidationError(
            f"Tokens {sealed} carry a vault and need a secret to be rotated"
        )
