# ==== IN-MEMORY RECORD STORE ==== #

"""
Process-local record store.

Keeps documents in nested dictionaries keyed by collection path and document
id. Every operation yields to the event loop before touching data, so
interleavings between concurrent callers behave like a remote store. A write
journal records every mutating call.
"""

import asyncio
import copy
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from procurement_core.business.amounts import coerce_amount
from procurement_core.errors import NotFoundError
from procurement_core.storage.paths import check_collection_path, split_document_path
from procurement_core.storage.store import FieldFilter, Record, RecordStore, apply_query


class InMemoryRecordStore(RecordStore):
    """Record store backed by process memory."""

    backend_name = "memory"

    def __init__(self, latency: float = 0.0):
        self._latency = latency
        self._collections: Dict[str, Dict[str, Record]] = defaultdict(dict)
        self._increment_lock = asyncio.Lock()
        self.journal: List[Tuple[str, str]] = []

    async def _yield(self) -> None:
        await asyncio.sleep(self._latency)

    # ==== READS ==== #

    async def get(self, path: str) -> Optional[Record]:
        collection, document_id = split_document_path(path)
        await self._yield()
        data = self._collections.get(collection, {}).get(document_id)
        if data is None:
            return None
        return self._with_id(path, copy.deepcopy(data))

    async def query(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        direction: str = "asc",
        limit: Optional[int] = None,
    ) -> List[Record]:
        collection = check_collection_path(collection_path)
        await self._yield()
        records = [
            {"id": document_id, **copy.deepcopy(data)}
            for document_id, data in self._collections.get(collection, {}).items()
        ]
        return apply_query(records, filters, order_by, direction, limit)

    # ==== WRITES ==== #

    async def set(self, path: str, data: Record, merge: bool = False) -> None:
        collection, document_id = split_document_path(path)
        await self._yield()
        payload = copy.deepcopy(self._strip_id(data))
        documents = self._collections[collection]
        if merge and document_id in documents:
            documents[document_id].update(payload)
        else:
            documents[document_id] = payload
        self.journal.append(("merge" if merge else "set", path))

    async def delete(self, path: str) -> None:
        collection, document_id = split_document_path(path)
        await self._yield()
        self._collections.get(collection, {}).pop(document_id, None)
        self.journal.append(("delete", path))

    async def increment(self, path: str, field: str, amount: float) -> float:
        collection, document_id = split_document_path(path)
        async with self._increment_lock:
            await self._yield()
            document = self._collections.get(collection, {}).get(document_id)
            if document is None:
                raise NotFoundError("document", path)
            value = coerce_amount(document.get(field)) + amount
            document[field] = value
            self.journal.append(("increment", path))
            return value

    # ==== TEST AND EMBEDDING HELPERS ==== #

    def seed(self, path: str, data: Record) -> None:
        """Insert a document synchronously without journaling it."""
        collection, document_id = split_document_path(path)
        self._collections[collection][document_id] = copy.deepcopy(self._strip_id(data))

    def writes(self) -> List[Tuple[str, str]]:
        return list(self.journal)

    def clear_journal(self) -> None:
        self.journal.clear()
