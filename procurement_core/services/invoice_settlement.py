"""
Invoice saving with optional deduction from a budget.

Saving the invoice and posting its payment are separate: when the invoice
write succeeds but the posting fails, the invoice stays saved and the outcome
says so.
"""

from typing import Any, Mapping, Optional, Union

from procurement_core.errors import BudgetUpdateError, ValidationError
from procurement_core.observability.logging import get_logger
from procurement_core.observability.tracing import get_tracer
from procurement_core.schemas.invoice import (
    Invoice,
    InvoiceStatus,
    SettlementOutcome,
    SettlementStatus,
)
from procurement_core.schemas.ledger import InvoiceMeta
from procurement_core.services.budget_ledger import BudgetLedger
from procurement_core.services.change_notifier import (
    DASHBOARD_UPDATED,
    INVOICE_UPDATED,
    ChangeNotifier,
)
from procurement_core.services.collection_loader import CollectionLoader
from procurement_core.storage import paths
from procurement_core.storage.store import RecordStore


tracer = get_tracer(__name__)
logger = get_logger(__name__)


class InvoiceSettlementService:
    """Saves invoices and, for paid ones, charges the chosen budget."""

    def __init__(
        self,
        store: RecordStore,
        ledger: BudgetLedger,
        loader: Optional[CollectionLoader] = None,
        notifier: Optional[ChangeNotifier] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.loader = loader or ledger.loader
        self.notifier = notifier or ledger.notifier

    async def settle(
        self,
        business_id: str,
        invoice: Union[Invoice, Mapping[str, Any]],
        *,
        deduct_from_budget: bool,
        budget_id: Optional[str] = None,
    ) -> SettlementOutcome:
        """
        Create or update an invoice and deduct it from a budget when elected.

        Args:
            business_id (str): Business owning the invoice
            invoice (Invoice | Mapping): Invoice to save; an ``id`` means update
            deduct_from_budget (bool): Charge the budget when the invoice is paid
            budget_id (Optional[str]): Budget to charge

        Returns:
            SettlementOutcome: Status and user-facing message

        Raises:
            ValidationError: Paid with deduction but no budget chosen, or a negative total
            TransientStoreError: The invoice itself could not be saved
        """
        model = invoice if isinstance(invoice, Invoice) else Invoice.model_validate(dict(invoice))
        deducting = model.status is InvoiceStatus.PAID and deduct_from_budget

        if deducting and not budget_id:
            raise ValidationError("Please select a budget to deduct from")

        total = model.calculate_total()
        if deducting and total < 0:
            raise ValidationError("Cannot deduct a negative invoice total from a budget")

        record = model.to_record()
        record["total"] = total

        with tracer.start_as_current_span("invoice.settle") as span:
            span.set_attribute("business_id", business_id)
            span.set_attribute("invoice.status", model.status.value)
            span.set_attribute("invoice.deduct", deducting)

            if model.id:
                invoice_id = model.id
                await self.store.set(paths.invoice_path(business_id, invoice_id), record, merge=True)
                message = "Invoice updated successfully"
            else:
                invoice_id = await self.store.add(
                    paths.business_collection_path(business_id, paths.INVOICES), record
                )
                message = "Invoice added successfully"

            status = SettlementStatus.SAVED
            error = None
            if deducting:
                meta = InvoiceMeta(
                    invoice_id=invoice_id,
                    invoice_number=model.invoice_number,
                    purchase_order_number=model.purchase_order_number,
                )
                try:
                    await self.ledger.post_payment(business_id, budget_id, total, meta)
                    status = SettlementStatus.SAVED_AND_BUDGET_UPDATED
                    message += " and budget updated"
                except BudgetUpdateError as e:
                    logger.warning(
                        "Invoice saved but budget deduction failed", business_id=business_id,
                        invoice_id=invoice_id, budget_id=budget_id, step=e.step, error=str(e)
                    )
                    status = SettlementStatus.SAVED_BUT_BUDGET_UPDATE_FAILED
                    message += " but budget update failed"
                    error = str(e)

            span.set_attribute("settlement.status", status.value)

        if self.loader is not None:
            self.loader.clear_cache(business_id, paths.INVOICES)
        payload = {"businessId": business_id, "invoiceId": invoice_id}
        await self.notifier.publish(INVOICE_UPDATED, payload)
        await self.notifier.publish(DASHBOARD_UPDATED, payload)

        logger.info(
            "Settled invoice", business_id=business_id, invoice_id=invoice_id,
            status=status.value, total=total
        )
        return SettlementOutcome(
            invoice_id=invoice_id, status=status, message=message, total=total, error=error
        )
