"""
Exceptions for Kardex.

Every error is a KardexError with a structured code for programmatic handling.
Subclasses exist so callers can catch a single failure class:

    try:
        kardex.sale(10, 'SKU-1', 'MAIN')
    except InsufficientStock as e:
        print(f"Only {e.available} on hand")
"""

from decimal import Decimal
from typing import Any


class KardexError(Exception):
    """
    Structured exception for inventory ledger operations.

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data
    """

    _default_messages = {
        'INVALID_ENTRY': 'Invalid ledger entry',
        'INSUFFICIENT_STOCK': 'Insufficient stock, please adjust quantity',
        'INSUFFICIENT_AVAILABLE': 'Requested quantity is not available',
        'INVALID_ADJUSTMENT': 'Adjustment would result in negative stock',
        'CONTENTION': 'Stock key is busy, retry later',
        'LEDGER_INCONSISTENCY': 'Ledger invariant violated',
        'INVALID_RESERVATION': 'Reservation is invalid or does not exist',
        'INVALID_STATUS': 'Invalid status for this operation',
        'RESERVATION_EXPIRED': 'Reservation has expired',
    }

    default_code = 'INVALID_ENTRY'
    retryable = False

    def __init__(self, code: str | None = None, message: str | None = None, **data):
        self.code = code or self.default_code
        self.message = message or self._default_messages.get(self.code, self.code)
        self.data = data
        super().__init__(self.message)

    @property
    def available(self) -> Any:
        """Shortcut for data['available']."""
        return self.data.get('available', 0)

    @property
    def requested(self) -> Any:
        """Shortcut for data['requested']."""
        return self.data.get('requested', 0)

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'message': self.message,
            'retryable': self.retryable,
            'data': {
                k: str(v) if isinstance(v, Decimal) else v
                for k, v in self.data.items()
            }
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, {self.message!r})"


class InvalidEntry(KardexError):
    """Malformed ledger entry, rejected before anything is written."""

    default_code = 'INVALID_ENTRY'


class InsufficientStock(KardexError):
    """SALE, TRANSFER or RETURN_OUT exceeds on-hand stock."""

    default_code = 'INSUFFICIENT_STOCK'


class InsufficientAvailable(KardexError):
    """Request exceeds on-hand minus reserved."""

    default_code = 'INSUFFICIENT_AVAILABLE'


class InvalidAdjustment(KardexError):
    """Adjustment would drive the balance below zero."""

    default_code = 'INVALID_ADJUSTMENT'


class Contention(KardexError):
    """Per-key lock could not be acquired in time. Retry with backoff."""

    default_code = 'CONTENTION'
    retryable = True


class LedgerInconsistency(KardexError):
    """
    A ledger invariant does not hold.

    Raised on negative fold results, orphaned transfer halves and cache
    drift. Never auto-corrected.
    """

    default_code = 'LEDGER_INCONSISTENCY'


class InvalidReservation(KardexError):
    """Reservation lookup or lifecycle error."""

    default_code = 'INVALID_RESERVATION'
