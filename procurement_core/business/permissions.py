# ==== MEMBERSHIP ROLES AND PERMISSION DEFAULTS ==== #

"""
Membership roles and role-derived permission defaults.

A membership record stored under a business carries an explicit permission
map. When the resolver has to rebuild a membership it only knows the role, so
the permission map is derived from it here.
"""

from enum import Enum
from typing import Dict


# ==== ENUMERATION DEFINITIONS ==== #


class Role(str, Enum):
    """Roles a user can hold inside a business."""

    ADMIN = "admin"
    MANAGER = "manager"
    OFFICER = "officer"


# Role assumed when a relation record exists but carries no role
DEFAULT_MEMBER_ROLE = Role.OFFICER.value

# Role given to a business owner whose relation records are materialized
OWNER_ROLE = Role.ADMIN.value

PERMISSION_KEYS = (
    "canCreateAccounts",
    "canCreateItems",
    "canCreateInvoices",
    "canCreatePOs",
    "canEditItems",
    "canDeleteItems",
    "canApprove",
    "requiresApproval",
)


# ==== PERMISSION DERIVATION ==== #


def permissions_for_role(role: str) -> Dict[str, bool]:
    """
    Build the default permission map for a role.

    Officers cannot create accounts, delete items or approve, and their
    actions require approval. Every other role gets full rights.

    Args:
        role (str): Membership role

    Returns:
        Dict[str, bool]: Permission map keyed as stored on memberships
    """
    restricted = role == Role.OFFICER.value
    return {
        "canCreateAccounts": not restricted,
        "canCreateItems": True,
        "canCreateInvoices": True,
        "canCreatePOs": True,
        "canEditItems": True,
        "canDeleteItems": not restricted,
        "canApprove": not restricted,
        "requiresApproval": restricted,
    }


def full_permissions() -> Dict[str, bool]:
    """Permission map for an owner/admin."""
    return permissions_for_role(Role.ADMIN.value)
