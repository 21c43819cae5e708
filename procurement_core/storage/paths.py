"""Path builders for the hierarchical record store.

Document paths have an even number of segments (``collection/id/...``),
collection paths an odd number.
"""

from typing import Tuple


BUSINESSES = "businesses"
USERS = "users"
MEMBERS = "users"
LINKS = "businesses"
BUDGETS = "budgets"
EXPENSES = "expenses"
ANNUAL_BUDGETS = "annualBudgets"
INVOICES = "invoices"


def _segments(path: str) -> list[str]:
    segments = path.strip("/").split("/")
    if not path or any(not s for s in segments):
        raise ValueError(f"Invalid store path: {path!r}")
    return segments


def split_document_path(path: str) -> Tuple[str, str]:
    """Split ``a/b/c/d`` into (``a/b/c``, ``d``)."""
    segments = _segments(path)
    if len(segments) % 2:
        raise ValueError(f"Not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def check_collection_path(path: str) -> str:
    segments = _segments(path)
    if not len(segments) % 2:
        raise ValueError(f"Not a collection path: {path!r}")
    return "/".join(segments)


def business_path(business_id: str) -> str:
    return f"{BUSINESSES}/{business_id}"


def user_path(user_id: str) -> str:
    return f"{USERS}/{user_id}"


def membership_path(business_id: str, user_id: str) -> str:
    return f"{BUSINESSES}/{business_id}/{MEMBERS}/{user_id}"


def user_links_path(user_id: str) -> str:
    return f"{USERS}/{user_id}/{LINKS}"


def link_path(user_id: str, business_id: str) -> str:
    return f"{user_links_path(user_id)}/{business_id}"


def business_collection_path(business_id: str, collection_name: str) -> str:
    return f"{BUSINESSES}/{business_id}/{collection_name}"


def budget_path(business_id: str, budget_id: str) -> str:
    return f"{business_collection_path(business_id, BUDGETS)}/{budget_id}"


def annual_summary_path(business_id: str, year: int) -> str:
    return f"{business_collection_path(business_id, ANNUAL_BUDGETS)}/{year}"


def invoice_path(business_id: str, invoice_id: str) -> str:
    return f"{business_collection_path(business_id, INVOICES)}/{invoice_id}"
