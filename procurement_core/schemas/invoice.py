"""Schemas for invoices and the outcome of settling one."""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from procurement_core.business.amounts import coerce_amount
from procurement_core.schemas import StoreModel


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceItem(StoreModel):
    """Line item; ``total`` wins over ``quantity * unit_price`` when set."""

    description: str = ""
    quantity: float = 1
    unit_price: float = 0.0
    total: Optional[float] = None

    @field_validator("quantity", "unit_price", mode="before")
    @classmethod
    def _coerce_numbers(cls, value):
        return coerce_amount(value)

    @field_validator("total", mode="before")
    @classmethod
    def _coerce_total(cls, value):
        return None if value is None else coerce_amount(value)

    def line_total(self) -> float:
        if self.total is not None:
            return self.total
        return self.quantity * self.unit_price


class Invoice(StoreModel):
    """Invoice record stored under ``businesses/{bid}/invoices``."""

    id: Optional[str] = None
    invoice_number: str = ""
    supplier_id: Optional[str] = None
    supplier_name: str = ""
    purchase_order_id: Optional[str] = None
    purchase_order_number: Optional[str] = None
    status: InvoiceStatus = InvoiceStatus.PENDING
    items: List[InvoiceItem] = Field(default_factory=list)
    total: Any = None
    payment_date: Optional[str] = None

    def calculate_total(self) -> float:
        """Sum of line totals, or the stored ``total`` for item-less invoices."""
        if self.items:
            return sum(item.line_total() for item in self.items)
        return coerce_amount(self.total)


class SettlementStatus(str, Enum):
    """How far an invoice save got."""

    SAVED = "saved"
    SAVED_AND_BUDGET_UPDATED = "saved_and_budget_updated"
    SAVED_BUT_BUDGET_UPDATE_FAILED = "saved_but_budget_update_failed"


class SettlementOutcome(BaseModel):
    """Result of saving an invoice, with the message shown to the user."""

    invoice_id: str
    status: SettlementStatus
    message: str
    total: float
    error: Optional[str] = None

    @property
    def is_warning(self) -> bool:
        return self.status is SettlementStatus.SAVED_BUT_BUDGET_UPDATE_FAILED
