"""
Kardex Models.

Core models for the inventory ledger:
- Location: Where stock is kept
- LedgerEntry: Immutable kardex of movements (source of truth)
- LocationBalance: Lock row + cached fold per (product, location)
- ProductStock: Cached product-level rollup
- Reservation: Quantity held for pending orders
"""

from kardex.models.balance import LocationBalance
from kardex.models.entry import LedgerEntry
from kardex.models.enums import (
    AdjustmentReason,
    EntryType,
    LocationKind,
    ReferenceType,
    ReservationStatus,
)
from kardex.models.location import Location
from kardex.models.product_stock import ProductStock
from kardex.models.reservation import Reservation

__all__ = [
    'AdjustmentReason',
    'EntryType',
    'LocationKind',
    'ReferenceType',
    'ReservationStatus',
    'Location',
    'LedgerEntry',
    'LocationBalance',
    'ProductStock',
    'Reservation',
]
