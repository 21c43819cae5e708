"""Pydantic schemas for records kept in the store and service results."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string, the store's timestamp format."""
    return datetime.now(timezone.utc).isoformat()


class StoreModel(BaseModel):
    """Base for records persisted with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_record(self) -> dict:
        """Dump as a store document (camelCase keys, no ``id``)."""
        return self.model_dump(by_alias=True, exclude={"id"})
