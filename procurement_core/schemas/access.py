"""Schemas for the user/business relation records."""

from enum import Enum
from typing import Dict

from pydantic import Field

from procurement_core.schemas import StoreModel, utc_now_iso


class AccessEvidence(str, Enum):
    """Where the resolver found proof that a user belongs to a business."""

    OWNER = "owner"
    MEMBERSHIP = "membership"
    LINK = "link"
    PROFILE_ROLE = "profile_role"


class UserBusinessLink(StoreModel):
    """Relation record stored under the user: ``users/{uid}/businesses/{bid}``."""

    business_id: str
    role: str
    created_at: str = Field(default_factory=utc_now_iso)


class BusinessMembership(StoreModel):
    """Relation record stored under the business: ``businesses/{bid}/users/{uid}``."""

    user_id: str
    role: str
    permissions: Dict[str, bool]
    email: str = ""
    name: str = ""
    created_at: str = Field(default_factory=utc_now_iso)
