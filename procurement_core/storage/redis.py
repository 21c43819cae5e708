# ==== REDIS RECORD STORE ==== #

"""
Redis-backed record store.

Each document is a JSON string under ``{prefix}:doc:{path}``; each collection
keeps the ids of its documents in a set under ``{prefix}:col:{collection}``.
Merge writes and increments run as WATCH/MULTI optimistic transactions, so
``increment`` is atomic across processes. Queries load the whole collection
and filter client-side.
"""

import json
from typing import List, Optional, Sequence

import redis.asyncio as redis
from redis.exceptions import RedisError

from procurement_core.business.amounts import coerce_amount
from procurement_core.errors import NotFoundError
from procurement_core.observability.logging import get_logger
from procurement_core.resilience.circuit_breaker import CircuitBreakerConfig
from procurement_core.resilience.decorators import store_resilient
from procurement_core.settings import settings
from procurement_core.storage.paths import check_collection_path, split_document_path
from procurement_core.storage.store import FieldFilter, Record, RecordStore, apply_query


logger = get_logger(__name__)


# ==== REDIS CLIENT FUNCTIONS ==== #

def create_redis_client(redis_url: str) -> redis.Redis:
    """
    Create a Redis client with SSL handling for ``rediss://`` URLs.

    Args:
        redis_url (str): Redis connection URL

    Returns:
        redis.Redis: Client decoding responses to str
    """
    ssl_config = {}
    if redis_url.startswith('rediss://'):
        ssl_config = {
            'ssl_cert_reqs': None,
            'ssl_check_hostname': False,
            'ssl_ca_certs': None
        }

    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        health_check_interval=30,
        **ssl_config
    )


# ==== STORE IMPLEMENTATION ==== #

class RedisRecordStore(RecordStore):
    """Record store persisting JSON documents in Redis."""

    backend_name = "redis"
    driver_errors = (RedisError,)

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        redis_url: Optional[str] = None,
        key_prefix: Optional[str] = None,
    ):
        self._client = client or create_redis_client(redis_url or settings.REDIS_URL)
        self.key_prefix = key_prefix or settings.REDIS_KEY_PREFIX
        self.circuit_config = CircuitBreakerConfig(
            failure_threshold=settings.STORE_CIRCUIT_FAILURE_THRESHOLD,
            recovery_timeout=settings.STORE_CIRCUIT_RECOVERY_SECONDS,
            expected_exception=RedisError,
        )


    # ==== KEY GENERATION ==== #


    def _document_key(self, path: str) -> str:
        return f"{self.key_prefix}:doc:{path.strip('/')}"

    def _collection_key(self, collection_path: str) -> str:
        return f"{self.key_prefix}:col:{collection_path.strip('/')}"

    @staticmethod
    def _decode(raw: Optional[str]) -> Optional[Record]:
        if raw is None:
            return None
        return json.loads(raw)

    @staticmethod
    def _encode(data: Record) -> str:
        return json.dumps(data, default=str)


    # ==== READS ==== #


    @store_resilient("get")
    async def get(self, path: str) -> Optional[Record]:
        split_document_path(path)
        data = self._decode(await self._client.get(self._document_key(path)))
        if data is None:
            return None
        return self._with_id(path, data)

    @store_resilient("query")
    async def query(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        direction: str = "asc",
        limit: Optional[int] = None,
    ) -> List[Record]:
        collection = check_collection_path(collection_path)
        document_ids = sorted(await self._client.smembers(self._collection_key(collection)))
        if not document_ids:
            return []

        raw_documents = await self._client.mget(
            [self._document_key(f"{collection}/{document_id}") for document_id in document_ids]
        )
        records = []
        for document_id, raw in zip(document_ids, raw_documents):
            data = self._decode(raw)
            if data is None:
                # id left behind by a concurrent delete
                continue
            records.append({"id": document_id, **data})
        return apply_query(records, filters, order_by, direction, limit)


    # ==== WRITES ==== #


    @store_resilient("set")
    async def set(self, path: str, data: Record, merge: bool = False) -> None:
        collection, document_id = split_document_path(path)
        key = self._document_key(path)
        payload = self._strip_id(data)

        if not merge:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(key, self._encode(payload))
                pipe.sadd(self._collection_key(collection), document_id)
                await pipe.execute()
            return

        async def merge_write(pipe) -> None:
            current = self._decode(await pipe.get(key)) or {}
            current.update(payload)
            pipe.multi()
            pipe.set(key, self._encode(current))
            pipe.sadd(self._collection_key(collection), document_id)

        await self._client.transaction(merge_write, key)

    @store_resilient("delete")
    async def delete(self, path: str) -> None:
        collection, document_id = split_document_path(path)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.delete(self._document_key(path))
            pipe.srem(self._collection_key(collection), document_id)
            await pipe.execute()

    @store_resilient("increment")
    async def increment(self, path: str, field: str, amount: float) -> float:
        split_document_path(path)
        key = self._document_key(path)

        async def increment_field(pipe) -> float:
            current = self._decode(await pipe.get(key))
            if current is None:
                raise NotFoundError("document", path)
            value = coerce_amount(current.get(field)) + amount
            current[field] = value
            pipe.multi()
            pipe.set(key, self._encode(current))
            return value

        return await self._client.transaction(increment_field, key, value_from_callable=True)

    async def close(self) -> None:
        """Close Redis client connection."""
        await self._client.aclose()
