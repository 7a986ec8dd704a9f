"""
Enums for Kardex models.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class EntryType(models.TextChoices):
    """Kind of stock movement recorded by a LedgerEntry."""
    INITIAL_LOAD = 'INITIAL_LOAD', _('Initial load')    # Opening balance (In)
    PURCHASE = 'PURCHASE', _('Purchase')                # Bought from supplier (In)
    SALE = 'SALE', _('Sale')                            # Sold to customer (Out)
    ADJUSTMENT = 'ADJUSTMENT', _('Adjustment')          # Manual correction (+/-)
    TRANSFER_OUT = 'TRANSFER_OUT', _('Transfer out')    # To another location (Out)
    TRANSFER_IN = 'TRANSFER_IN', _('Transfer in')       # From another location (In)
    RETURN_IN = 'RETURN_IN', _('Customer return')       # Restocked return (In)
    RETURN_OUT = 'RETURN_OUT', _('Supplier return')     # Sent back to supplier (Out)


INBOUND_TYPES = frozenset({
    EntryType.INITIAL_LOAD,
    EntryType.PURCHASE,
    EntryType.TRANSFER_IN,
    EntryType.RETURN_IN,
})

OUTBOUND_TYPES = frozenset({
    EntryType.SALE,
    EntryType.TRANSFER_OUT,
    EntryType.RETURN_OUT,
})


class ReferenceType(models.TextChoices):
    """Business object that originated a movement."""
    ORDER = 'ORDER', _('Order')
    PURCHASE_ORDER = 'PURCHASE_ORDER', _('Purchase order')
    TRANSFER = 'TRANSFER', _('Transfer')
    ADJUSTMENT = 'ADJUSTMENT', _('Adjustment')
    RETURN = 'RETURN', _('Return')
    RESERVATION = 'RESERVATION', _('Reservation')
    BACKFILL = 'BACKFILL', _('Backfill')


class AdjustmentReason(models.TextChoices):
    """Reason codes accepted by manual corrections."""
    DAMAGED = 'DAMAGED', _('Damaged / Broken')
    LOST = 'LOST', _('Lost / Theft')
    FOUND = 'FOUND', _('Found in warehouse')
    COUNT_CORRECTION = 'COUNT_CORRECTION', _('Count correction')
    PROMOTION = 'PROMOTION', _('Marketing / Promotion')
    RECOUNT = 'RECOUNT', _('Full recount')


class LocationKind(models.TextChoices):
    """
    Type of stock location.

    WAREHOUSE:          Our own building, stock adjusted by our staff.
    FBA:                Marketplace fulfillment (Amazon FBA).
    FULFILLMENT_CENTER: Other third-party fulfillment (Mercado Libre Full).
    """
    WAREHOUSE = 'WAREHOUSE', _('Warehouse')
    FBA = 'FBA', _('Fulfillment by Amazon')
    FULFILLMENT_CENTER = 'FULFILLMENT_CENTER', _('Fulfillment center')


class ReservationStatus(models.TextChoices):
    """Reservation lifecycle status."""
    PENDING = 'pending', _('Pending')         # Holding stock for an order
    COMMITTED = 'committed', _('Committed')   # Converted into a SALE entry
    RELEASED = 'released', _('Released')      # Cancelled or expired
