# ==== CACHED COLLECTION LOADER ==== #

"""
Business-scoped collection reads with a short-lived cache.

Read-heavy views load whole collections under ``businesses/{bid}``. Results are
cached per business and collection for a fixed window; any mutation that can
make them stale must call ``clear_cache``. A permission pre-check runs on
cache misses when the caller names the user.
"""

import copy
from typing import List, Optional

from procurement_core.errors import TransientStoreError
from procurement_core.observability.logging import get_logger
from procurement_core.observability.metrics import (
    cache_hits_total,
    cache_invalidations_total,
    cache_misses_total,
)
from procurement_core.observability.tracing import get_tracer
from procurement_core.services.access_resolver import AccessResolver
from procurement_core.settings import settings
from procurement_core.storage import paths
from procurement_core.storage.store import Record, RecordStore
from procurement_core.storage.ttl_cache import TTLCache


# ==== MODULE INITIALIZATION ==== #

tracer = get_tracer(__name__)
logger = get_logger(__name__)


# ==== LOADER ==== #


class CollectionLoader:
    """
    Loads business collections through a TTL cache.

    One loader instance owns one cache; share the instance to share the cache.
    """

    def __init__(
        self,
        store: RecordStore,
        resolver: Optional[AccessResolver] = None,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
    ):
        self.store = store
        self.resolver = resolver or AccessResolver(store)
        self.cache = TTLCache(
            ttl_seconds=ttl_seconds or settings.CACHE_TTL_SECONDS,
            max_entries=max_entries or settings.CACHE_MAX_ENTRIES,
        )

    @staticmethod
    def cache_key(business_id: str, collection_name: str) -> str:
        return f"{business_id}:{collection_name}"


    # ==== LOADING ==== #


    async def load(
        self,
        business_id: Optional[str],
        collection_name: str,
        order_field: Optional[str] = None,
        direction: str = "asc",
        user_id: Optional[str] = None,
    ) -> List[Record]:
        """
        Load every record of a business collection.

        Entries are cached per business and collection only. A hit returns
        the records in whatever order they were first loaded, so callers that
        need a different ordering must sort the result themselves.

        Args:
            business_id (Optional[str]): Business the collection belongs to
            collection_name (str): Collection under the business
            order_field (Optional[str]): Field to order by
            direction (str): ``asc`` or ``desc``
            user_id (Optional[str]): When given, checked for access on a cache miss

        Returns:
            List[Record]: Records with their ``id``; empty without a business id

        Raises:
            PermissionDeniedError: ``user_id`` is not owner or member
            TransientStoreError: The store query failed
        """
        if not business_id:
            logger.error("No business ID provided", collection=collection_name)
            return []

        key = self.cache_key(business_id, collection_name)
        entry = self.cache.get(key)
        if entry is not None:
            cache_hits_total.labels(collection=collection_name).inc()
            logger.debug("Using cached collection", business_id=business_id, collection=collection_name)
            return copy.deepcopy(entry.data)

        cache_misses_total.labels(collection=collection_name).inc()

        with tracer.start_as_current_span("collection.load") as span:
            span.set_attribute("business_id", business_id)
            span.set_attribute("collection", collection_name)

            if user_id:
                await self.resolver.check_permission(user_id, business_id, collection_name)

            collection_path = paths.business_collection_path(business_id, collection_name)
            try:
                records = await self.store.query(
                    collection_path, order_by=order_field, direction=direction
                )
            except TransientStoreError as e:
                logger.error(
                    "Failed to load collection", business_id=business_id,
                    collection=collection_name, error=str(e)
                )
                raise TransientStoreError(
                    f"Failed to load {collection_name}: {e}",
                    operation="load",
                    path=collection_path,
                ) from e

            span.set_attribute("collection.size", len(records))

        logger.info(
            "Loaded collection", business_id=business_id,
            collection=collection_name, count=len(records)
        )
        self.cache.set(key, records)
        return copy.deepcopy(records)


    # ==== INVALIDATION ==== #


    def clear_cache(self, business_id: Optional[str], collection_name: Optional[str] = None) -> int:
        """
        Drop cached results for one collection or for the whole business.

        Returns:
            int: Number of entries removed
        """
        if not business_id:
            return 0

        if collection_name:
            removed = int(self.cache.delete(self.cache_key(business_id, collection_name)))
            cache_invalidations_total.labels(scope="collection").inc()
            logger.debug("Cleared collection cache", business_id=business_id, collection=collection_name)
            return removed

        removed = self.cache.delete_prefix(f"{business_id}:")
        cache_invalidations_total.labels(scope="business").inc()
        logger.debug("Cleared business cache", business_id=business_id, removed=removed)
        return removed

    def sweep_expired(self) -> int:
        """Remove stale entries; meant for long-lived processes."""
        return self.cache.sweep_expired()


    # ==== COLLECTION SHORTCUTS ==== #


    async def load_inventory_items(self, business_id: Optional[str], user_id: Optional[str] = None) -> List[Record]:
        return await self.load(business_id, "inventoryItems", "name", "asc", user_id)

    async def load_suppliers(self, business_id: Optional[str], user_id: Optional[str] = None) -> List[Record]:
        return await self.load(business_id, "suppliers", "name", "asc", user_id)

    async def load_invoices(self, business_id: Optional[str], user_id: Optional[str] = None) -> List[Record]:
        return await self.load(business_id, paths.INVOICES, "date", "desc", user_id)

    async def load_purchase_orders(self, business_id: Optional[str], user_id: Optional[str] = None) -> List[Record]:
        return await self.load(business_id, "purchaseOrders", "createdAt", "desc", user_id)

    async def load_budgets(self, business_id: Optional[str], user_id: Optional[str] = None) -> List[Record]:
        return await self.load(business_id, paths.BUDGETS, "year", "desc", user_id)
