"""Unit tests for budget payment postings and annual summaries."""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from freezegun import freeze_time

from procurement_core.errors import BudgetUpdateError, NotFoundError, TransientStoreError, ValidationError
from procurement_core.schemas.ledger import Budget, InvoiceMeta
from procurement_core.services.budget_ledger import BudgetLedger
from procurement_core.services.collection_loader import CollectionLoader
from procurement_core.storage import paths
from procurement_core.storage.memory import InMemoryRecordStore

BUSINESS_ID = "biz-1"

INVOICE_META = InvoiceMeta(invoice_id="inv-7", invoice_number="INV-7", purchase_order_number="PO-3")


class ReadGateStore(InMemoryRecordStore):
    """Holds budget reads until ``readers`` callers have all read the budget."""

    def __init__(self, readers: int):
        super().__init__()
        self.readers = readers
        self.reads = 0
        self.all_read = asyncio.Event()

    async def get(self, path):
        record = await super().get(path)
        if "/budgets/" in path and not self.all_read.is_set():
            self.reads += 1
            if self.reads >= self.readers:
                self.all_read.set()
            await self.all_read.wait()
        return record


async def expenses_of(store):
    return await store.query(paths.business_collection_path(BUSINESS_ID, paths.EXPENSES))


@pytest.mark.unit
class TestPostPayment:
    """Posting an invoice payment against a budget."""

    @pytest.mark.asyncio
    @freeze_time("2024-05-10 08:30:00")
    async def test_payment_updates_spent_expense_and_summary(self, store, ledger, budgets):
        assert await ledger.post_payment(BUSINESS_ID, "b1", 150, INVOICE_META) is True

        budget = await store.get(paths.budget_path(BUSINESS_ID, "b1"))
        assert budget["spent"] == 350
        assert budget["updatedAt"] == "2024-05-10T08:30:00+00:00"

        expenses = await expenses_of(store)
        assert len(expenses) == 1
        expense = expenses[0]
        assert expense["amount"] == 150
        assert expense["category"] == "Office"
        assert expense["budgetId"] == "b1"
        assert expense["year"] == 2024
        assert expense["invoiceId"] == "inv-7"
        assert expense["description"] == "Payment for Invoice INV-7 (PO: PO-3)"

        summary = await store.get(paths.annual_summary_path(BUSINESS_ID, 2024))
        assert summary["year"] == 2024
        assert summary["totalAmount"] == 6300
        assert summary["categories"] == [
            {"name": "Office", "amount": 1300},
            {"name": "IT", "amount": 5000},
        ]

    @pytest.mark.asyncio
    @freeze_time("2024-05-10 08:30:00")
    async def test_meta_as_mapping_without_po(self, store, ledger, budgets):
        await ledger.post_payment(BUSINESS_ID, "b2", 99.5, {"invoiceNumber": "INV-9"})

        expense = (await expenses_of(store))[0]
        assert expense["description"] == "Payment for Invoice INV-9"
        assert expense["invoiceId"] is None
        assert expense["category"] == "IT"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored_spent,expected", [("200", 350), ("abc", 150), (None, 150)])
    @freeze_time("2024-05-10 08:30:00")
    async def test_spent_is_coerced(self, store, ledger, business, stored_spent, expected):
        store.seed(
            paths.budget_path(BUSINESS_ID, "b1"),
            {"category": "Office", "year": 2024, "amount": 1000, "spent": stored_spent},
        )

        await ledger.post_payment(BUSINESS_ID, "b1", 150, INVOICE_META)

        budget = await store.get(paths.budget_path(BUSINESS_ID, "b1"))
        assert budget["spent"] == expected

    @pytest.mark.asyncio
    @freeze_time("2024-05-10 08:30:00")
    async def test_uncategorized_budget(self, store, ledger, business):
        store.seed(paths.budget_path(BUSINESS_ID, "b9"), {"year": 2024, "amount": 10, "spent": 0})

        await ledger.post_payment(BUSINESS_ID, "b9", 5, INVOICE_META)

        assert (await expenses_of(store))[0]["category"] == "Uncategorized"
        summary = await store.get(paths.annual_summary_path(BUSINESS_ID, 2024))
        assert summary["categories"] == [{"name": "Uncategorized", "amount": 10}]

    @pytest.mark.asyncio
    @freeze_time("2024-05-10 08:30:00")
    async def test_invalidates_caches_and_signals(self, store, ledger, loader, budgets, signals):
        await loader.load(BUSINESS_ID, "budgets")
        await loader.load(BUSINESS_ID, "expenses")
        await loader.load(BUSINESS_ID, "suppliers")

        await ledger.post_payment(BUSINESS_ID, "b1", 150, INVOICE_META)

        assert CollectionLoader.cache_key(BUSINESS_ID, "budgets") not in loader.cache
        assert CollectionLoader.cache_key(BUSINESS_ID, "expenses") not in loader.cache
        assert CollectionLoader.cache_key(BUSINESS_ID, "suppliers") in loader.cache
        assert signals == ["budget_updated", "dashboard_updated"]

        budgets_now = await loader.load(BUSINESS_ID, "budgets")
        assert {b["id"]: b["spent"] for b in budgets_now}["b1"] == 350

    @pytest.mark.asyncio
    async def test_missing_budget_fails_first_step(self, store, ledger, business, signals):
        with pytest.raises(BudgetUpdateError) as exc_info:
            await ledger.post_payment(BUSINESS_ID, "nope", 150, INVOICE_META)

        assert exc_info.value.step == "read_budget"
        assert isinstance(exc_info.value.cause, NotFoundError)
        assert store.writes() == []
        assert signals == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("invoice_total", [-150, "-0.01", "lots", None])
    async def test_rejects_invalid_total_before_any_write(self, store, ledger, budgets, signals, invoice_total):
        with pytest.raises(ValidationError):
            await ledger.post_payment(BUSINESS_ID, "b1", invoice_total, INVOICE_META)

        assert store.writes() == []
        assert (await store.get(paths.budget_path(BUSINESS_ID, "b1")))["spent"] == 200
        assert await expenses_of(store) == []
        assert signals == []

    @pytest.mark.asyncio
    @freeze_time("2024-05-10 08:30:00")
    async def test_zero_total_is_posted(self, store, ledger, budgets):
        assert await ledger.post_payment(BUSINESS_ID, "b1", 0, INVOICE_META) is True

        assert (await store.get(paths.budget_path(BUSINESS_ID, "b1")))["spent"] == 200
        assert [e["amount"] for e in await expenses_of(store)] == [0]

    @pytest.mark.asyncio
    @freeze_time("2024-05-10 08:30:00")
    async def test_failed_expense_append_stops_remaining_steps(self, store, ledger, budgets, signals):
        with patch.object(store, "add", AsyncMock(side_effect=TransientStoreError("write timeout"))):
            with pytest.raises(BudgetUpdateError) as exc_info:
                await ledger.post_payment(BUSINESS_ID, "b1", 150, INVOICE_META)

        assert exc_info.value.step == "append_expense"
        assert "append_expense" in str(exc_info.value)
        # spent was already written; nothing after the failing step ran
        assert (await store.get(paths.budget_path(BUSINESS_ID, "b1")))["spent"] == 350
        assert await store.get(paths.annual_summary_path(BUSINESS_ID, 2024)) is None
        assert signals == []

    @pytest.mark.asyncio
    @freeze_time("2024-05-10 08:30:00")
    async def test_atomic_strategy_posts_through_increment(self, store, business, budgets):
        ledger = BudgetLedger(store, spend_strategy="atomic")

        await ledger.post_payment(BUSINESS_ID, "b1", 150, INVOICE_META)

        assert ("increment", paths.budget_path(BUSINESS_ID, "b1")) in store.writes()
        assert (await store.get(paths.budget_path(BUSINESS_ID, "b1")))["spent"] == 350

    def test_unknown_strategy_rejected(self, store):
        with pytest.raises(ValueError, match="Unknown spend strategy"):
            BudgetLedger(store, spend_strategy="optimistic")


@pytest.mark.unit
class TestConcurrentPostings:
    """Two postings that both read the budget before either writes."""

    @pytest.mark.asyncio
    @freeze_time("2024-05-10 08:30:00")
    async def test_read_modify_write_loses_one_increment(self):
        store = ReadGateStore(readers=2)
        store.seed(paths.business_path(BUSINESS_ID), {"ownerId": "owner-1"})
        store.seed(paths.budget_path(BUSINESS_ID, "b1"), {"category": "Office", "year": 2024, "amount": 1000, "spent": 0})
        ledger = BudgetLedger(store, spend_strategy="read_modify_write")

        await asyncio.gather(
            ledger.post_payment(BUSINESS_ID, "b1", 100, INVOICE_META),
            ledger.post_payment(BUSINESS_ID, "b1", 100, INVOICE_META),
        )

        assert (await store.get(paths.budget_path(BUSINESS_ID, "b1")))["spent"] == 100
        assert len(await expenses_of(store)) == 2

    @pytest.mark.asyncio
    @freeze_time("2024-05-10 08:30:00")
    async def test_atomic_keeps_both_increments(self):
        store = ReadGateStore(readers=2)
        store.seed(paths.business_path(BUSINESS_ID), {"ownerId": "owner-1"})
        store.seed(paths.budget_path(BUSINESS_ID, "b1"), {"category": "Office", "year": 2024, "amount": 1000, "spent": 0})
        ledger = BudgetLedger(store, spend_strategy="atomic")

        await asyncio.gather(
            ledger.post_payment(BUSINESS_ID, "b1", 100, INVOICE_META),
            ledger.post_payment(BUSINESS_ID, "b1", 100, INVOICE_META),
        )

        assert (await store.get(paths.budget_path(BUSINESS_ID, "b1")))["spent"] == 200
        assert len(await expenses_of(store)) == 2


@pytest.mark.unit
class TestAnnualSummary:
    """Full recompute of the per-year projection."""

    @pytest.mark.asyncio
    async def test_recompute_is_idempotent_and_keeps_created_at(self, store, ledger, budgets):
        with freeze_time("2024-01-01 00:00:00") as frozen:
            first = await ledger.recompute_annual_summary(BUSINESS_ID, 2024)
            created = (await store.get(paths.annual_summary_path(BUSINESS_ID, 2024)))["createdAt"]

            frozen.tick(3600)
            second = await ledger.recompute_annual_summary(BUSINESS_ID, 2024)
            record = await store.get(paths.annual_summary_path(BUSINESS_ID, 2024))

        assert first == second
        assert record["createdAt"] == created
        assert record["updatedAt"] == "2024-01-01T01:00:00+00:00"

    @pytest.mark.asyncio
    async def test_only_budgets_of_the_year_count(self, ledger, budgets):
        summary = await ledger.recompute_annual_summary(BUSINESS_ID, 2023)

        assert summary.total_amount == 4000
        assert [(c.name, c.amount) for c in summary.categories] == [("IT", 4000)]

    @pytest.mark.asyncio
    async def test_non_numeric_amounts_count_as_zero(self, store, ledger, budgets):
        store.seed(paths.budget_path(BUSINESS_ID, "b5"), {"category": "Travel", "year": 2024, "amount": "n/a"})

        summary = await ledger.recompute_annual_summary(BUSINESS_ID, 2024)

        assert summary.total_amount == 6300
        assert ("Travel", 0.0) in [(c.name, c.amount) for c in summary.categories]

    @pytest.mark.asyncio
    async def test_empty_year_writes_zero_summary(self, store, ledger, business):
        summary = await ledger.recompute_annual_summary(BUSINESS_ID, 2030)

        assert summary.total_amount == 0
        assert summary.categories == []
        assert await store.get(paths.annual_summary_path(BUSINESS_ID, 2030)) is not None


@pytest.mark.unit
class TestBudgetCreationAndOverview:
    """Creating budgets and the dashboard spend overview."""

    @pytest.mark.asyncio
    async def test_create_budget_starts_unspent(self, store, ledger, loader, budgets, signals):
        await loader.load(BUSINESS_ID, "budgets")

        budget_id = await ledger.create_budget(
            BUSINESS_ID, {"name": "Travel", "category": "Travel", "year": 2024, "amount": 700, "spent": 500}
        )

        record = await store.get(paths.budget_path(BUSINESS_ID, budget_id))
        assert record["spent"] == 0
        assert record["amount"] == 700
        assert "createdAt" in record

        summary = await store.get(paths.annual_summary_path(BUSINESS_ID, 2024))
        assert summary["totalAmount"] == 7000
        assert CollectionLoader.cache_key(BUSINESS_ID, "budgets") not in loader.cache
        assert signals == ["budget_updated", "dashboard_updated"]

    @pytest.mark.asyncio
    async def test_create_budget_from_model(self, store, ledger, business):
        budget_id = await ledger.create_budget(BUSINESS_ID, Budget(name="Fuel", year=2025, amount=120))

        record = await store.get(paths.budget_path(BUSINESS_ID, budget_id))
        assert record["category"] is None
        summary = await store.get(paths.annual_summary_path(BUSINESS_ID, 2025))
        assert summary["categories"] == [{"name": "Uncategorized", "amount": 120}]

    @pytest.mark.asyncio
    async def test_spend_overview(self, ledger, budgets):
        overview = await ledger.budget_spend_overview(BUSINESS_ID, 2024)

        assert overview.total_amount == 6300
        assert overview.total_spent == 250
        assert overview.remaining == 6050
        assert overview.percent_spent == 4
        assert [(c.name, c.amount, c.spent) for c in overview.categories] == [
            ("Office", 1300, 250),
            ("IT", 5000, 0),
        ]

    @pytest.mark.asyncio
    async def test_spend_overview_without_budgets(self, ledger, business):
        overview = await ledger.budget_spend_overview(BUSINESS_ID, 2030)

        assert overview.total_amount == 0
        assert overview.percent_spent == 0
        assert overview.categories == []
