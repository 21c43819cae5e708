# ==== BUDGET LEDGER AGGREGATOR ==== #

"""
Posts invoice payments against budgets and keeps derived totals in step.

A posting is a fixed sequence of separate store operations: re-read the
budget, write the new ``spent``, append an expense, recompute the annual
summary for the year, then invalidate cached views and signal listeners. The
first failing step aborts the rest and surfaces as ``BudgetUpdateError``.

Two spend strategies exist. ``read_modify_write`` adds the payment to the
value read in the first step, so two concurrent postings can lose one
increment. ``atomic`` delegates the addition to the store's ``increment``.
"""

from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from procurement_core.business.amounts import coerce_amount, is_numeric_amount, strict_amount
from procurement_core.errors import BudgetUpdateError, DataShapeError, NotFoundError, ValidationError
from procurement_core.observability.logging import get_logger, log_business_event
from procurement_core.observability.metrics import (
    ledger_failures_total,
    ledger_posted_amount_total,
    ledger_postings_total,
    summary_recomputes_total,
)
from procurement_core.observability.tracing import get_tracer
from procurement_core.schemas import utc_now_iso
from procurement_core.schemas.ledger import (
    UNCATEGORIZED,
    AnnualBudgetSummary,
    Budget,
    BudgetSpendOverview,
    CategorySpend,
    CategoryTotal,
    Expense,
    InvoiceMeta,
)
from procurement_core.services.change_notifier import BUDGET_UPDATED, ChangeNotifier
from procurement_core.services.collection_loader import CollectionLoader
from procurement_core.settings import settings
from procurement_core.storage import paths
from procurement_core.storage.store import FieldFilter, Record, RecordStore


# ==== MODULE INITIALIZATION ==== #

tracer = get_tracer(__name__)
logger = get_logger(__name__)

READ_MODIFY_WRITE = "read_modify_write"
ATOMIC = "atomic"
SPEND_STRATEGIES = (READ_MODIFY_WRITE, ATOMIC)

# --► STEP NAMES CARRIED BY BudgetUpdateError
STEP_READ_BUDGET = "read_budget"
STEP_UPDATE_SPENT = "update_spent"
STEP_APPEND_EXPENSE = "append_expense"
STEP_RECOMPUTE_SUMMARY = "recompute_summary"
STEP_NOTIFY = "notify"

LEDGER_COLLECTIONS = (paths.BUDGETS, paths.EXPENSES, paths.ANNUAL_BUDGETS)


def current_year() -> int:
    return datetime.now(timezone.utc).year


# ==== LEDGER ==== #


class BudgetLedger:
    """
    Budget spend postings, annual summaries and the spend overview.

    ``loader`` and ``notifier`` are optional; without a loader there is no
    cache to invalidate.
    """

    def __init__(
        self,
        store: RecordStore,
        loader: Optional[CollectionLoader] = None,
        notifier: Optional[ChangeNotifier] = None,
        spend_strategy: Optional[str] = None,
    ):
        strategy = spend_strategy or settings.LEDGER_SPEND_STRATEGY
        if strategy not in SPEND_STRATEGIES:
            raise ValueError(
                f"Unknown spend strategy {strategy!r}; expected one of {', '.join(SPEND_STRATEGIES)}"
            )
        self.store = store
        self.loader = loader
        self.notifier = notifier or ChangeNotifier()
        self.spend_strategy = strategy


    # ==== PAYMENT POSTING ==== #


    async def post_payment(
        self,
        business_id: str,
        budget_id: str,
        invoice_total: float,
        invoice_meta: Union[InvoiceMeta, Mapping[str, Any], None] = None,
    ) -> bool:
        """
        Add an invoice payment to a budget's spend and record the expense.

        Args:
            business_id (str): Business owning the budget
            budget_id (str): Budget to charge
            invoice_total (float): Amount to add to ``spent``
            invoice_meta (InvoiceMeta | Mapping | None): Invoice id, number and PO number

        Returns:
            bool: Always True; a failed posting raises instead of returning False

        Raises:
            ValidationError: ``invoice_total`` is negative or not a number; nothing is written
            BudgetUpdateError: A step failed; ``step`` names which one
        """
        amount = self._payment_amount(invoice_total)
        meta = self._coerce_meta(invoice_meta)
        budget_path = paths.budget_path(business_id, budget_id)

        with tracer.start_as_current_span("ledger.post_payment") as span:
            span.set_attribute("business_id", business_id)
            span.set_attribute("budget_id", budget_id)
            span.set_attribute("ledger.amount", amount)
            span.set_attribute("ledger.strategy", self.spend_strategy)

            # --► STEP 1: RE-READ BUDGET
            budget = await self._step(
                STEP_READ_BUDGET, business_id, budget_id, self._read_budget(budget_path)
            )

            # --► STEP 2/3: NEW SPENT
            if self.spend_strategy == ATOMIC:
                new_spent = await self._step(
                    STEP_UPDATE_SPENT, business_id, budget_id,
                    self._increment_spent(budget_path, amount),
                )
            else:
                current = self._coerce_spent(budget, business_id, budget_id)
                new_spent = current + amount
                await self._step(
                    STEP_UPDATE_SPENT, business_id, budget_id,
                    self.store.set(budget_path, {"spent": new_spent, "updatedAt": utc_now_iso()}, merge=True),
                )

            logger.info(
                "Updated budget spent amount", business_id=business_id,
                budget_id=budget_id, amount=amount, new_spent=new_spent
            )

            # --► STEP 4: APPEND EXPENSE
            year = current_year()
            expense = Expense(
                amount=amount,
                budget_id=budget_id,
                year=year,
                category=budget.get("category") or UNCATEGORIZED,
                description=meta.expense_description(),
                invoice_id=meta.invoice_id,
            )
            expense_id = await self._step(
                STEP_APPEND_EXPENSE, business_id, budget_id,
                self.store.add(paths.business_collection_path(business_id, paths.EXPENSES), expense.to_record()),
            )

            # --► STEP 5: ANNUAL SUMMARY
            await self._step(
                STEP_RECOMPUTE_SUMMARY, business_id, budget_id,
                self.recompute_annual_summary(business_id, year),
            )

            # --► STEP 6: INVALIDATE AND SIGNAL
            await self._step(
                STEP_NOTIFY, business_id, budget_id,
                self._invalidate_and_signal(business_id, budget_id=budget_id),
            )

        ledger_postings_total.labels(strategy=self.spend_strategy).inc()
        ledger_posted_amount_total.inc(amount)
        log_business_event(
            "budget_payment_posted", business_id,
            budget_id=budget_id, amount=amount, new_spent=new_spent,
            expense_id=expense_id, invoice_id=meta.invoice_id
        )
        return True

    @staticmethod
    def _payment_amount(invoice_total: Any) -> float:
        try:
            amount = strict_amount("invoiceTotal", invoice_total)
        except DataShapeError as e:
            raise ValidationError(f"Invoice total must be a number, got {invoice_total!r}") from e
        if amount < 0:
            raise ValidationError(f"Invoice total must not be negative, got {amount}")
        return amount

    async def _step(self, step: str, business_id: str, budget_id: str, awaitable):
        try:
            return await awaitable
        except Exception as e:
            ledger_failures_total.labels(step=step).inc()
            logger.error(
                "Budget posting step failed", step=step,
                business_id=business_id, budget_id=budget_id, error=str(e)
            )
            raise BudgetUpdateError(step, business_id, budget_id, cause=e) from e

    async def _read_budget(self, budget_path: str) -> Record:
        budget = await self.store.get(budget_path)
        if budget is None:
            raise NotFoundError("budget", budget_path)
        return budget

    async def _increment_spent(self, budget_path: str, amount: float) -> float:
        new_spent = await self.store.increment(budget_path, "spent", amount)
        await self.store.set(budget_path, {"updatedAt": utc_now_iso()}, merge=True)
        return new_spent

    @staticmethod
    def _coerce_spent(budget: Record, business_id: str, budget_id: str) -> float:
        raw = budget.get("spent")
        if raw is not None and not is_numeric_amount(raw):
            logger.warning(
                "Budget spent is not numeric; coercing", business_id=business_id,
                budget_id=budget_id, spent=repr(raw)
            )
        return coerce_amount(raw)

    @staticmethod
    def _coerce_meta(invoice_meta: Union[InvoiceMeta, Mapping[str, Any], None]) -> InvoiceMeta:
        if isinstance(invoice_meta, InvoiceMeta):
            return invoice_meta
        return InvoiceMeta.model_validate(dict(invoice_meta or {}))


    # ==== ANNUAL SUMMARY ==== #


    async def recompute_annual_summary(self, business_id: str, year: int) -> AnnualBudgetSummary:
        """
        Rebuild ``annualBudgets/{year}`` from every budget of that year.

        Amounts are summed per category (first-seen order) and in total. The
        summary is overwritten; an existing ``createdAt`` is kept. Running it
        twice over the same budgets writes the same totals.
        """
        with tracer.start_as_current_span("ledger.recompute_summary") as span:
            span.set_attribute("business_id", business_id)
            span.set_attribute("year", year)

            budgets = await self.store.query(
                paths.business_collection_path(business_id, paths.BUDGETS),
                filters=[FieldFilter("year", "==", year)],
            )

            totals: "OrderedDict[str, float]" = OrderedDict()
            for budget in budgets:
                category = budget.get("category") or UNCATEGORIZED
                totals[category] = totals.get(category, 0.0) + coerce_amount(budget.get("amount"))

            summary = AnnualBudgetSummary(
                year=year,
                total_amount=sum(totals.values()),
                categories=[CategoryTotal(name=name, amount=amount) for name, amount in totals.items()],
            )

            summary_path = paths.annual_summary_path(business_id, year)
            existing = await self.store.get(summary_path)
            now = utc_now_iso()
            record = summary.to_record()
            record["createdAt"] = (existing or {}).get("createdAt") or now
            record["updatedAt"] = now
            await self.store.set(summary_path, record)

        summary_recomputes_total.inc()
        logger.info(
            "Recomputed annual budget summary", business_id=business_id,
            year=year, total_amount=summary.total_amount, budgets=len(budgets)
        )
        return summary


    # ==== BUDGET CREATION ==== #


    async def create_budget(self, business_id: str, budget: Union[Budget, Mapping[str, Any]]) -> str:
        """
        Store a new budget with nothing spent and refresh its year's summary.

        Returns:
            str: The new budget id
        """
        model = budget if isinstance(budget, Budget) else Budget.model_validate(dict(budget))
        record = model.to_record()
        record["spent"] = 0.0
        record.setdefault("createdAt", utc_now_iso())

        budget_id = await self.store.add(paths.business_collection_path(business_id, paths.BUDGETS), record)
        logger.info(
            "Created budget", business_id=business_id, budget_id=budget_id,
            year=model.year, category=model.category_name, amount=model.amount
        )

        await self.recompute_annual_summary(business_id, model.year)
        await self._invalidate_and_signal(business_id, budget_id=budget_id)
        return budget_id


    # ==== DASHBOARD OVERVIEW ==== #


    async def budget_spend_overview(self, business_id: str, year: Optional[int] = None) -> BudgetSpendOverview:
        """Allocated, spent and remaining totals for a year, overall and per category."""
        year = year or current_year()
        budgets = await self.store.query(
            paths.business_collection_path(business_id, paths.BUDGETS),
            filters=[FieldFilter("year", "==", year)],
        )

        categories: Dict[str, List[float]] = OrderedDict()
        for budget in budgets:
            category = budget.get("category") or UNCATEGORIZED
            allocated, spent = categories.setdefault(category, [0.0, 0.0])
            categories[category] = [
                allocated + coerce_amount(budget.get("amount")),
                spent + coerce_amount(budget.get("spent")),
            ]

        total_amount = sum(amount for amount, _ in categories.values())
        total_spent = sum(spent for _, spent in categories.values())
        percent_spent = round(total_spent / total_amount * 100) if total_amount > 0 else 0

        return BudgetSpendOverview(
            year=year,
            total_amount=total_amount,
            total_spent=total_spent,
            remaining=total_amount - total_spent,
            percent_spent=percent_spent,
            categories=[
                CategorySpend(name=name, amount=amount, spent=spent)
                for name, (amount, spent) in categories.items()
            ],
        )


    # ==== INVALIDATION ==== #


    async def _invalidate_and_signal(self, business_id: str, **payload: Any) -> None:
        if self.loader is not None:
            for collection_name in LEDGER_COLLECTIONS:
                self.loader.clear_cache(business_id, collection_name)
        await self.notifier.publish(BUDGET_UPDATED, {"businessId": business_id, **payload})
