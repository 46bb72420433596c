"""Redis-backed token store.

Records are stored as orjson documents with secondary keys for the owning
user, the (action, token) lookup pair and the (user, action) uniqueness
constraint. Multi-key writes run inside WATCH/MULTI transactions.
"""
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

import orjson
import structlog
from redis import Redis
from redis.exceptions import RedisError

from ...config import get_settings
from .actions import TokenAction
from .exceptions import ConstraintViolationError, PersistenceError
from .token_models import TokenFilter, TokenRecord
from .token_store import TokenStore, check_rotation

log = structlog.get_logger()


class RedisTokenStore(TokenStore):
    """Redis implementation of the token store."""

    def __init__(self, redis_url: str | None = None, prefix: str = "tokenvault"):
        """
        Initialize Redis token store.

        Args:
            redis_url: Redis connection URL (defaults to settings.REDIS_URL)
            prefix: Namespace for every key written by the store
        """
        self.redis_url = redis_url or str(get_settings().REDIS_URL)
        self._prefix = prefix
        self._client: Redis | None = None

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        return self._client

    # Key layout

    def _seq_key(self) -> str:
        return f"{self._prefix}:seq"

    def _ids_key(self) -> str:
        return f"{self._prefix}:ids"

    def _record_key(self, record_id: int) -> str:
        return f"{self._prefix}:record:{record_id}"

    def _user_key(self, user_id: int) -> str:
        return f"{self._prefix}:user:{user_id}"

    def _lookup_key(self, action_id: TokenAction, token_value: str) -> str:
        return f"{self._prefix}:lookup:{TokenAction(action_id).value}:{token_value}"

    def _unique_key(self, user_id: int, action_id: TokenAction) -> str:
        return f"{self._prefix}:unique:{user_id}:{TokenAction(action_id).value}"

    @staticmethod
    def _encode(record: TokenRecord) -> bytes:
        return orjson.dumps(record.model_dump(mode="json"))

    @staticmethod
    def _decode(raw: bytes) -> TokenRecord:
        return TokenRecord.model_validate(orjson.loads(raw))

    @contextmanager
    def _redis_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except RedisError as e:
            log.error("redis.operation_failed", operation=operation, error=str(e))
            raise PersistenceError(f"Redis {operation} failed: {e}") from e

    # Reads

    def get_by_id(self, record_id: int) -> Optional[TokenRecord]:
        with self._redis_errors("get"):
            raw = self._get_client().get(self._record_key(record_id))
        return self._decode(raw) if raw is not None else None

    def find_by_action_and_token(
        self,
        action_id: TokenAction,
        token_value: str
    ) -> Optional[TokenRecord]:
        with self._redis_errors("lookup"):
            record_id = self._get_client().get(self._lookup_key(action_id, token_value))
        if record_id is None:
            return None
        record = self.get_by_id(int(record_id))
        # The record may have been rotated or updated since the index was read
        if record is None or record.token_value != token_value:
            return None
        if record.action_id != TokenAction(action_id):
            return None
        return record

    def find_by_user_id(self, user_id: int) -> Optional[str]:
        with self._redis_errors("find_by_user"):
            ids = self._get_client().smembers(self._user_key(user_id))
        if not ids:
            return None
        latest = self.get_by_id(max(int(i) for i in ids))
        return latest.token_value if latest else None

    def list_all(self, token_filter: Optional[TokenFilter] = None) -> list[TokenRecord]:
        with self._redis_errors("list"):
            client = self._get_client()
            ids = sorted(int(i) for i in client.smembers(self._ids_key()))
            if not ids:
                return []
            raws = client.mget([self._record_key(i) for i in ids])

        records = [self._decode(raw) for raw in raws if raw is not None]
        if token_filter is not None:
            records = [r for r in records if token_filter.matches(r)]
        return records

    # Writes

    def create(self, record: TokenRecord) -> TokenRecord:
        unique_key = self._unique_key(record.user_id, record.action_id)

        def _apply(pipe) -> TokenRecord:
            if pipe.exists(unique_key):
                raise ConstraintViolationError(
                    f"User {record.user_id} already holds a token for "
                    f"{TokenAction(record.action_id).value}"
                )
            record_id = int(pipe.incr(self._seq_key()))
            stored = record.model_copy(update={"id": record_id})

            pipe.multi()
            pipe.set(unique_key, record_id)
            pipe.set(self._record_key(record_id), self._encode(stored))
            pipe.sadd(self._user_key(stored.user_id), record_id)
            pipe.sadd(self._ids_key(), record_id)
            pipe.set(self._lookup_key(stored.action_id, stored.token_value), record_id)
            return stored

        with self._redis_errors("create"):
            stored = self._get_client().transaction(
                _apply, unique_key, value_from_callable=True
            )

        log.debug("store.created", token_id=stored.id, user_id=stored.user_id, backend="redis")
        return stored

    def update(self, record: TokenRecord) -> int:
        if record.id is None:
            return 0

        record_key = self._record_key(record.id)
        new_unique = self._unique_key(record.user_id, record.action_id)

        def _apply(pipe) -> int:
            raw = pipe.get(record_key)
            if raw is None:
                return 0
            current = self._decode(raw)
            if current.user_id != record.user_id:
                raise ConstraintViolationError("Token owner cannot be changed")

            action_changed = current.action_id != record.action_id
            if action_changed:
                owner = pipe.get(new_unique)
                if owner is not None and int(owner) != record.id:
                    raise ConstraintViolationError(
                        f"User {record.user_id} already holds a token for "
                        f"{TokenAction(record.action_id).value}"
                    )

            pipe.multi()
            pipe.set(record_key, self._encode(record))
            if action_changed:
                pipe.delete(self._unique_key(current.user_id, current.action_id))
                pipe.set(new_unique, record.id)
            if action_changed or current.token_value != record.token_value:
                pipe.delete(self._lookup_key(current.action_id, current.token_value))
                pipe.set(self._lookup_key(record.action_id, record.token_value), record.id)
            return 1

        with self._redis_errors("update"):
            updated = self._get_client().transaction(
                _apply, record_key, new_unique, value_from_callable=True
            )
        log.debug("store.updated", token_id=record.id, backend="redis")
        return updated

    def rotate(
        self,
        user_id: int,
        token_value: str,
        vault: Optional[str],
        verification_hash: Optional[str]
    ) -> int:
        user_key = self._user_key(user_id)

        def _apply(pipe) -> int:
            record_keys = [self._record_key(int(i)) for i in pipe.smembers(user_key)]
            if not record_keys:
                return 0
            pipe.watch(*record_keys)
            current = [self._decode(raw) for raw in pipe.mget(record_keys) if raw is not None]
            check_rotation(current, vault)

            pipe.multi()
            for record in current:
                changes = {"token_value": token_value}
                if record.vault is not None:
                    changes["vault"] = vault
                    changes["verification_hash"] = verification_hash
                rotated = record.model_copy(update=changes)
                pipe.set(self._record_key(record.id), self._encode(rotated))
                pipe.delete(self._lookup_key(record.action_id, record.token_value))
                pipe.set(self._lookup_key(record.action_id, token_value), record.id)
            return len(current)

        with self._redis_errors("rotate"):
            count = self._get_client().transaction(_apply, user_key, value_from_callable=True)
        log.debug("store.rotated", user_id=user_id, count=count, backend="redis")
        return count

    def delete(self, record_id: int) -> int:
        record_key = self._record_key(record_id)

        def _apply(pipe) -> int:
            raw = pipe.get(record_key)
            if raw is None:
                return 0
            record = self._decode(raw)
            pipe.multi()
            pipe.delete(record_key)
            pipe.srem(self._user_key(record.user_id), record_id)
            pipe.srem(self._ids_key(), record_id)
            pipe.delete(self._lookup_key(record.action_id, record.token_value))
            pipe.delete(self._unique_key(record.user_id, record.action_id))
            return 1

        with self._redis_errors("delete"):
            deleted = self._get_client().transaction(_apply, record_key, value_from_callable=True)
        if deleted:
            log.debug("store.deleted", token_id=record_id, backend="redis")
        return deleted

    def delete_batch(self, record_ids: Iterable[int]) -> int:
        return sum(self.delete(record_id) for record_id in set(record_ids))

    def delete_by_user_id(self, user_id: int) -> int:
        with self._redis_errors("delete_by_user"):
            ids = self._get_client().smembers(self._user_key(user_id))
        return self.delete_batch(int(i) for i in ids)

    def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            return bool(self._get_client().ping())
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    def clear(self) -> None:
        with self._redis_errors("clear"):
            client = self._get_client()
            keys = list(client.scan_iter(match=f"{self._prefix}:*"))
            if keys:
                client.delete(*keys)
        log.info("store.cleared", backend="redis")

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
