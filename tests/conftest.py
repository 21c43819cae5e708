# ==== SHARED TEST FIXTURES AND CONFIGURATION ==== #

"""
Shared test fixtures for the procurement core.

Every service runs against the in-memory record store. Fixtures seed a
business with an owner, a plain user and a set of budgets, and wire the
resolver, loader, ledger and notifier together the way callers do.
"""

import os


# ==== FORCE ENVIRONMENT SETUP BEFORE ANY IMPORTS ==== #

# Set environment variables BEFORE importing any procurement_core modules
os.environ.update({
    "APP_ENV": "test",
    "STORE_BACKEND": "memory",
    "REDIS_URL": "redis://localhost:6379/1",
    "CACHE_TTL_SECONDS": "30",
    "CACHE_MAX_ENTRIES": "512",
    "LEDGER_SPEND_STRATEGY": "read_modify_write",
    "LOG_LEVEL": "WARNING",
})
os.environ.pop("OTEL_EXPORTER_OTLP_ENDPOINT", None)

import pytest

from procurement_core.resilience.circuit_breaker import _circuit_breakers
from procurement_core.services.access_resolver import AccessResolver
from procurement_core.services.budget_ledger import BudgetLedger
from procurement_core.services.change_notifier import ChangeNotifier
from procurement_core.services.collection_loader import CollectionLoader
from procurement_core.storage import paths
from procurement_core.storage.memory import InMemoryRecordStore


BUSINESS_ID = "biz-1"
OWNER_ID = "owner-1"
USER_ID = "user-1"


# ==== STORE FIXTURES ==== #


@pytest.fixture
def store():
    """Empty in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def business(store):
    """Business owned by OWNER_ID, with the owner's profile seeded."""
    record = {"name": "Acme Supplies", "ownerId": OWNER_ID, "createdAt": "2024-01-01T00:00:00+00:00"}
    store.seed(paths.business_path(BUSINESS_ID), record)
    store.seed(paths.user_path(OWNER_ID), {"email": "owner@acme.test", "name": "Olivia Owner"})
    return {"id": BUSINESS_ID, **record}


@pytest.fixture
def user(store):
    """Profile of a non-owner user with no relation records yet."""
    record = {"email": "user@acme.test", "name": "Sam Buyer"}
    store.seed(paths.user_path(USER_ID), record)
    return {"id": USER_ID, **record}


@pytest.fixture
def budgets(store, business):
    """Three 2024 budgets and one 2023 budget for the business."""
    seeded = {
        "b1": {"name": "Office supplies", "category": "Office", "year": 2024, "amount": 1000, "spent": 200},
        "b2": {"name": "Laptops", "category": "IT", "year": 2024, "amount": 5000, "spent": 0},
        "b3": {"name": "Printer paper", "category": "Office", "year": 2024, "amount": 300, "spent": 50},
        "b4": {"name": "Old IT", "category": "IT", "year": 2023, "amount": 4000, "spent": 3900},
    }
    for budget_id, record in seeded.items():
        store.seed(paths.budget_path(BUSINESS_ID, budget_id), record)
    return seeded


# ==== SERVICE FIXTURES ==== #


@pytest.fixture
def resolver(store):
    return AccessResolver(store)


@pytest.fixture
def loader(store, resolver):
    return CollectionLoader(store, resolver, ttl_seconds=30, max_entries=512)


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def signals(notifier):
    """Names of every change signal published during the test, in order."""
    received = []
    for name in ("budget_updated", "invoice_updated", "dashboard_updated"):
        notifier.subscribe(name, lambda signal: received.append(signal.name))
    return received


@pytest.fixture
def ledger(store, loader, notifier):
    return BudgetLedger(store, loader=loader, notifier=notifier, spend_strategy="read_modify_write")


# ==== CLEANUP ==== #


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Breakers are process-wide; start every test with none registered."""
    _circuit_breakers.clear()
    yield
    _circuit_breakers.clear()
