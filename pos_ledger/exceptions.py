from __future__ import annotations


class LedgerError(Exception):
    """Base class for errors raised by the billing and inventory services."""


class ValidationError(LedgerError):
    """Customer, line-item or payment input is malformed. Raised before any write."""


class InsufficientStockError(LedgerError):
    def __init__(self, product: str, size: str, requested: int, available: int) -> None:
        self.product = product
        self.size = size
        self.requested = requested
        self.available = available
        super().__init__(
            f'Insufficient stock for {product} / {size}: requested {requested}, available {available}'
        )


class BalanceMismatchError(LedgerError):
    def __init__(self, expected, received) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f'Payment split {received} does not match total {expected}')


class PersistenceError(LedgerError):
    """A ledger store call failed. The message is the store's own error text."""


class PartialFailureWarning(LedgerError):
    """
    A multi-step write (order placement or settlement) completed some steps and then failed.

    Completed steps are not rolled back. The ledger, order and settlement records for
    `reference` must be reconciled by hand.
    """

    def __init__(
        self,
        *,
        operation: str,
        reference: int | str | None,
        completed_steps: list[str],
        failed_step: str,
        cause: Exception,
    ) -> None:
        self.operation = operation
        self.reference = reference
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step
        self.cause = cause
        super().__init__(
            f'{operation} {reference}: failed at {failed_step} after {", ".join(completed_steps)}: {cause}. '
            'Completed steps were not rolled back; manual reconciliation required.'
        )
