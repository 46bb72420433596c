"""
TokenVaultManager: issuance, refresh, verification and revocation of API tokens
"""

from typing import Iterable, Optional

import structlog

from ...config import Settings, get_settings
from ...metrics import Metrics
from .actions import ActionInfo, SensitiveActionPolicy, TokenAction
from .crypto_service import CryptoError, CryptoService
from .exceptions import (
    NotFoundError,
    PartialFailureError,
    ValidationError,
    VerificationError,
)
from .redis_store import RedisTokenStore
from .session_keys import SessionKeyProvider
from .token_models import IssueMode, TokenFilter, TokenRecord
from .token_store import InMemoryTokenStore, TokenStore

log = structlog.get_logger()


class TokenVaultManager:
    """
    Service for managing API tokens and their vaults

    Provides:
    - Issuance with an explicit reuse/rotate mode
    - Vault sealing for sensitive actions under the principal's session key
    - Atomic refresh of token value, vault and hash
    - Lookup and secret verification scoped to an action
    - Single, batch and per-user revocation
    """

    def __init__(
        self,
        store: TokenStore,
        session_keys: SessionKeyProvider,
        crypto_service: Optional[CryptoService] = None,
        policy: Optional[SensitiveActionPolicy] = None,
        issue_mode: IssueMode = IssueMode.REUSE,
        metrics: Optional[Metrics] = None
    ):
        """
        Initialize TokenVaultManager

        Args:
            store: Token persistence
            session_keys: Source of the session key used to seal vaults
            crypto_service: CryptoService instance (creates new if not provided)
            policy: Sensitive-action table (defaults to the built-in table)
            issue_mode: Default token value policy for issue()
            metrics: Optional Prometheus metrics sink
        """
        self._store = store
        self._session_keys = session_keys
        self._crypto = crypto_service or CryptoService()
        self._policy = policy or SensitiveActionPolicy()
        self._issue_mode = IssueMode(issue_mode)
        self._metrics = metrics

    @property
    def store(self) -> TokenStore:
        return self._store

    @property
    def policy(self) -> SensitiveActionPolicy:
        return self._policy

    @property
    def issue_mode(self) -> IssueMode:
        return self._issue_mode

    def attach_metrics(self, metrics: Metrics) -> None:
        self._metrics = metrics

    def issue(
        self,
        action_id: TokenAction,
        user_id: int,
        principal: int,
        secret: Optional[str] = None,
        mode: Optional[IssueMode] = None
    ) -> TokenRecord:
        """
        Issue a token granting one action to a user

        Args:
            action_id: Capability granted by the token
            user_id: Owner of the token
            principal: Acting user; its session key seals the vault
            secret: Secret sealed into the vault (sensitive actions only)
            mode: Overrides the manager's issue mode for this call

        Returns:
            The persisted TokenRecord

        Raises:
            ValidationError: If a sensitive action lacks a secret
            SessionKeyError: If the principal has no live session
            PersistenceError: If the store rejects the record
        """
        action_id = TokenAction(action_id)
        mode = IssueMode(mode or self._issue_mode)

        token_value = None
        if mode is IssueMode.REUSE:
            token_value = self._store.find_by_user_id(user_id)
        if token_value is None:
            token_value = self._crypto.generate_token()

        vault, verification_hash = self._secure_data(
            self._policy.requires_vault(action_id), token_value, secret, principal
        )
        record = TokenRecord(
            user_id=user_id,
            action_id=action_id,
            token_value=token_value,
            vault=vault,
            verification_hash=verification_hash,
            created_by=principal,
        )
        stored = self._store.create(record)

        if self._metrics:
            self._metrics.record_token_issued(action_id.value)
        log.info(
            "token.issued",
            token_id=stored.id,
            user_id=user_id,
            action=action_id.value,
            mode=mode.value,
            sealed=stored.has_vault,
            token_prefix=token_value[:8],
        )
        return stored

    def refresh(
        self,
        record: TokenRecord,
        principal: int,
        secret: Optional[str] = None
    ) -> TokenRecord:
        """
        Rotate the bearer value of a user's tokens

        A new token value is always generated. The value, vault and hash of
        every record of the user change in one atomic store write.

        Raises:
            ValidationError: If a vault must be re-sealed and no secret is given
            NotFoundError: If the record no longer exists after rotation
        """
        needs_vault = self._user_needs_vault(record)
        token_value = self._crypto.generate_token()
        vault, verification_hash = self._secure_data(
            needs_vault, token_value, secret, principal
        )

        rotated = self._store.rotate(record.user_id, token_value, vault, verification_hash)
        refreshed = self._store.get_by_id(record.id) if record.id is not None else None
        if refreshed is None:
            raise NotFoundError("Token not found")

        if self._metrics:
            self._metrics.record_token_refreshed(refreshed.action_id.value)
        log.info(
            "token.refreshed",
            token_id=refreshed.id,
            user_id=refreshed.user_id,
            rotated=rotated,
            token_prefix=token_value[:8],
        )
        return refreshed

    def update(
        self,
        record: TokenRecord,
        principal: int,
        secret: Optional[str] = None
    ) -> TokenRecord:
        """
        Store a changed action or secret, keeping the record's token value

        Raises:
            ValidationError: If a sensitive action lacks a secret
            NotFoundError: If the record does not exist
            PersistenceError: If the user already holds a token for the action
        """
        action_id = TokenAction(record.action_id)
        vault, verification_hash = self._secure_data(
            self._policy.requires_vault(action_id), record.token_value, secret, principal
        )
        updated = record.model_copy(update={
            "action_id": action_id,
            "vault": vault,
            "verification_hash": verification_hash,
            "created_by": principal,
        })

        if self._store.update(updated) == 0:
            raise NotFoundError("Token not found")

        log.info("token.updated", token_id=updated.id, action=action_id.value)
        return updated

    def lookup(self, action_id: TokenAction, token_value: str) -> Optional[TokenRecord]:
        """
        Find a token by capability and value

        Returns:
            The matching record, or None
        """
        return self._store.find_by_action_and_token(TokenAction(action_id), token_value)

    def get_by_id(self, record_id: int) -> TokenRecord:
        record = self._store.get_by_id(record_id)
        if record is None:
            raise NotFoundError("Token not found")
        return record

    def verify(
        self,
        action_id: TokenAction,
        token_value: str,
        secret: Optional[str] = None
    ) -> TokenRecord:
        """
        Check a bearer token, and its secret for sensitive actions

        Raises:
            NotFoundError: If no token matches the action and value
            VerificationError: If the secret does not match the stored hash
        """
        record = self.lookup(action_id, token_value)
        if record is None:
            log.debug("token.verify_failed", reason="not_found", token_prefix=token_value[:8])
            raise NotFoundError("Token not found")

        if record.verification_hash is not None:
            if not secret or not self._crypto.check_hash_key(secret, record.verification_hash):
                log.warning("token.verify_failed", reason="secret_mismatch", token_id=record.id)
                raise VerificationError("Secret does not match token")

        log.debug("token.verified", token_id=record.id)
        return record

    def open_vault(self, record: TokenRecord, principal: int) -> str:
        """
        Unseal a record's vault and return the secret stored in it

        Raises:
            ValidationError: If the record has no vault
            SessionKeyError: If the principal has no live session
            CryptoError: If the vault cannot be opened or does not belong
                to the record's token value
        """
        if record.vault is None:
            raise ValidationError("Token has no vault")

        key = self._session_keys.current_key(principal)
        try:
            payload = self._crypto.unseal(record.vault, key).decode("utf-8")
        except (CryptoError, UnicodeDecodeError):
            self._record_vault("unseal", "error")
            log.warning("vault.unseal_failed", token_id=record.id)
            raise

        if not payload.endswith(record.token_value):
            self._record_vault("unseal", "error")
            raise CryptoError("Vault does not match token value")

        self._record_vault("unseal", "ok")
        return payload[:-len(record.token_value)]

    def revoke(self, record_id: int) -> int:
        """
        Delete one token

        Raises:
            NotFoundError: If the token does not exist
        """
        count = self._store.delete(record_id)
        if count == 0:
            raise NotFoundError("Token not found")

        if self._metrics:
            self._metrics.record_tokens_revoked(count)
        log.info("token.revoked", token_id=record_id)
        return count

    def revoke_batch(self, record_ids: Iterable[int]) -> int:
        """
        Delete several tokens

        Returns:
            Number of tokens deleted

        Raises:
            PartialFailureError: If fewer tokens were deleted than requested;
                the error carries the actual count
        """
        record_ids = list(record_ids)
        count = self._store.delete_batch(record_ids)

        if self._metrics:
            self._metrics.record_tokens_revoked(count)

        if count != len(record_ids):
            log.warning("token.revoke_batch_partial", deleted=count, requested=len(record_ids))
            raise PartialFailureError(count, len(record_ids))

        log.info("token.revoked_batch", deleted=count)
        return count

    def revoke_user(self, user_id: int) -> int:
        """Delete every token owned by a user"""
        count = self._store.delete_by_user_id(user_id)
        if self._metrics:
            self._metrics.record_tokens_revoked(count)
        log.info("token.revoked_user", user_id=user_id, deleted=count)
        return count

    def list_all(self, token_filter: Optional[TokenFilter] = None) -> list[TokenRecord]:
        return self._store.list_all(token_filter)

    def token_actions(self) -> list[ActionInfo]:
        """Catalogue of actions a token may grant"""
        return self._policy.catalogue()

    def _user_needs_vault(self, record: TokenRecord) -> bool:
        # Rotation rewrites every record of the user, so any sensitive or
        # sealed sibling needs a freshly sealed vault as well. The store
        # re-checks this atomically and rejects a rotation that would leave
        # a vault bound to the old token.
        if self._policy.requires_vault(record.action_id):
            return True
        siblings = self._store.list_all(TokenFilter(user_id=record.user_id))
        return any(r.has_vault or self._policy.requires_vault(r.action_id) for r in siblings)

    def _secure_data(
        self,
        sensitive: bool,
        token_value: str,
        secret: Optional[str],
        principal: int
    ) -> tuple[Optional[str], Optional[str]]:
        """Seal secret || token_value and hash the secret, or (None, None)."""
        if not sensitive:
            return None, None
        if not secret:
            raise ValidationError("A secret is required for this action")

        key = self._session_keys.current_key(principal)
        try:
            vault = self._crypto.seal((secret + token_value).encode("utf-8"), key)
        except CryptoError:
            self._record_vault("seal", "error")
            raise

        self._record_vault("seal", "ok")
        return vault, self._crypto.hash_key(secret)

    def _record_vault(self, operation: str, outcome: str) -> None:
        if self._metrics:
            self._metrics.record_vault_operation(operation, outcome)


def create_default_store(settings: Optional[Settings] = None) -> TokenStore:
    """
    Create the token store selected by configuration.

    Returns:
        TokenStore instance based on STORE_BACKEND setting
    """
    settings = settings or get_settings()
    if settings.STORE_BACKEND == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "store.fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured"
            )
            return InMemoryTokenStore()

        log.info("store.selected", type="redis")
        return RedisTokenStore(redis_url=str(settings.REDIS_URL))

    log.info("store.selected", type="memory")
    return InMemoryTokenStore()
