"""Schemas for budgets, expenses and the annual budget summary."""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from procurement_core.business.amounts import coerce_amount
from procurement_core.schemas import StoreModel, utc_now_iso


UNCATEGORIZED = "Uncategorized"


class Budget(StoreModel):
    """Planned spending allocation for a category and year."""

    id: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    year: int
    amount: float = 0.0
    spent: float = 0.0

    @field_validator("amount", "spent", mode="before")
    @classmethod
    def _coerce_money(cls, value):
        return coerce_amount(value)

    @property
    def category_name(self) -> str:
        return self.category or UNCATEGORIZED

    @property
    def remaining(self) -> float:
        return self.amount - self.spent


class Expense(StoreModel):
    """Append-only ledger posting against one budget."""

    amount: float
    date: str = Field(default_factory=utc_now_iso)
    budget_id: str
    year: int
    category: str = UNCATEGORIZED
    description: str = ""
    invoice_id: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)


class CategoryTotal(BaseModel):
    """Allocated amount for one category in an annual summary."""

    name: str
    amount: float


class AnnualBudgetSummary(StoreModel):
    """Derived per-year projection over every budget of that year."""

    year: int
    total_amount: float
    categories: List[CategoryTotal]


class InvoiceMeta(StoreModel):
    """Invoice details carried onto the expense record."""

    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    purchase_order_number: Optional[str] = None

    def expense_description(self) -> str:
        description = f"Payment for Invoice {self.invoice_number or self.invoice_id or ''}".rstrip()
        if self.purchase_order_number:
            description += f" (PO: {self.purchase_order_number})"
        return description


class CategorySpend(BaseModel):
    """Allocated and spent totals for one category."""

    name: str
    amount: float
    spent: float


class BudgetSpendOverview(BaseModel):
    """Dashboard view of a year's budgets."""

    year: int
    total_amount: float
    total_spent: float
    remaining: float
    percent_spent: int
    categories: List[CategorySpend]
