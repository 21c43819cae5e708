"""Exception hierarchy for the procurement core."""

from typing import Optional


class ProcurementCoreError(Exception):
    """Base class for every error raised by this package."""


class NotFoundError(ProcurementCoreError):
    """A referenced business, budget or user record does not exist."""

    def __init__(self, kind: str, path: str):
        self.kind = kind
        self.path = path
        super().__init__(f"{kind} not found at {path}")


class PermissionDeniedError(ProcurementCoreError):
    """The user has no established relation to the business."""

    def __init__(self, message: str, user_id: Optional[str] = None, business_id: Optional[str] = None):
        self.user_id = user_id
        self.business_id = business_id
        super().__init__(message)


class TransientStoreError(ProcurementCoreError):
    """A record store read or write failed.

    Propagated to the caller for the single operation; never retried here.
    """

    def __init__(self, message: str, operation: Optional[str] = None, path: Optional[str] = None):
        self.operation = operation
        self.path = path
        super().__init__(message)


class DataShapeError(ProcurementCoreError):
    """A stored field has a type that strict coercion cannot accept."""

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"Field {field!r} has unexpected value {value!r}")


class ValidationError(ProcurementCoreError):
    """Caller input was rejected before any write was attempted."""


class BudgetUpdateError(ProcurementCoreError):
    """A budget ledger step failed; the remaining steps were not run."""

    def __init__(self, step: str, business_id: str, budget_id: str, cause: Optional[BaseException] = None):
        self.step = step
        self.business_id = business_id
        self.budget_id = budget_id
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Budget update failed at step '{step}' for budget {budget_id}{detail}")
