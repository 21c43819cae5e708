# ==== RECORD STORE INTERFACE ==== #

"""
Abstract record store used by every core service.

The store addresses JSON-like documents by hierarchical path and supports
get, set (optionally merged), add with a generated id, delete, filtered and
ordered queries over a collection, and an atomic numeric increment. Separate
calls are not transactional with each other.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from procurement_core.storage.paths import split_document_path


Record = Dict[str, Any]

_OPERATORS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "in": lambda a, b: a in b,
}


@dataclass(frozen=True)
class FieldFilter:
    """Single ``field op value`` query condition."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op!r}")

    def matches(self, record: Record) -> bool:
        if self.field not in record:
            return False
        try:
            return _OPERATORS[self.op](record[self.field], self.value)
        except TypeError:
            return False


def _sort_key(value: Any):
    # numbers before strings before anything else, like a document store would
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value, "")
    if isinstance(value, str):
        return (2, 0, value)
    return (3, 0, str(value))


def apply_query(
    records: Iterable[Record],
    filters: Sequence[FieldFilter] = (),
    order_by: Optional[str] = None,
    direction: str = "asc",
    limit: Optional[int] = None,
) -> List[Record]:
    """Filter, order and limit already-loaded records.

    Records lacking ``order_by`` are excluded from an ordered result.
    """
    if direction not in ("asc", "desc"):
        raise ValueError(f"Invalid order direction: {direction!r}")

    result = [r for r in records if all(f.matches(r) for f in filters)]
    if order_by:
        result = [r for r in result if order_by in r]
        result.sort(key=lambda r: _sort_key(r[order_by]), reverse=direction == "desc")
    if limit is not None:
        result = result[:limit]
    return result


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


class RecordStore(ABC):
    """
    Path-addressed async document store.

    Documents returned by ``get`` and ``query`` are copies that include their
    ``id``. Writes never persist the ``id`` key.
    """

    backend_name: str = "abstract"

    @abstractmethod
    async def get(self, path: str) -> Optional[Record]:
        """Return the document at ``path`` or ``None``."""

    @abstractmethod
    async def set(self, path: str, data: Record, merge: bool = False) -> None:
        """Write a document, replacing it unless ``merge`` is set."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""

    @abstractmethod
    async def query(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        direction: str = "asc",
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Return the documents of a collection that match ``filters``."""

    @abstractmethod
    async def increment(self, path: str, field: str, amount: float) -> float:
        """Atomically add ``amount`` to a numeric field and return the new value.

        A missing or non-numeric field counts as zero. Raises ``NotFoundError``
        when the document does not exist.
        """

    async def add(self, collection_path: str, data: Record) -> str:
        """Create a document with a generated id and return the id."""
        document_id = new_document_id()
        await self.set(f"{collection_path}/{document_id}", data)
        return document_id

    async def exists(self, path: str) -> bool:
        return await self.get(path) is not None

    async def close(self) -> None:
        """Release backend resources."""

    @staticmethod
    def _strip_id(data: Record) -> Record:
        return {k: v for k, v in data.items() if k != "id"}

    @staticmethod
    def _with_id(path: str, data: Record) -> Record:
        _, document_id = split_document_path(path)
        return {"id": document_id, **data}
