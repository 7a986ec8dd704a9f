"""
LedgerEntry model — Immutable kardex of stock movements.
"""

import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from kardex.exceptions import InvalidEntry
from kardex.models.enums import EntryType, ReferenceType


class LedgerEntryQuerySet(models.QuerySet):
    """Read helpers. Bulk mutation is refused: the ledger is append-only."""

    def for_key(self, product_id: str, location_id: str):
        return self.filter(product_id=product_id, location_id=location_id)

    def for_product(self, product_id: str):
        return self.filter(product_id=product_id)

    def until(self, timestamp):
        """Entries with timestamp <= given timestamp."""
        return self.filter(timestamp__lte=timestamp)

    def in_order(self):
        """Total order used by every fold: (timestamp, sequence)."""
        return self.order_by('timestamp', 'sequence', 'location_id')

    def transfers(self):
        return self.filter(reference_type=ReferenceType.TRANSFER)

    def update(self, **kwargs):
        raise InvalidEntry(
            message="Ledger entries are immutable. Post an ADJUSTMENT instead."
        )

    def delete(self):
        raise InvalidEntry(
            message="Ledger entries are immutable. Post an ADJUSTMENT instead."
        )


class LedgerEntry(models.Model):
    """
    Immutable record of one stock movement at one location.

    Rules:
    - NEVER update() or delete()
    - Corrections are new ADJUSTMENT entries
    - Written only through LedgerStore.append()

    ``sequence`` is a per-(product, location) insertion counter assigned at
    append time. Together with ``timestamp`` it gives every key a total
    order, even for backdated entries or equal timestamps.

    ``balance_after`` and the average cost snapshots are the fold result at
    this entry's position when it was written. Balances are always
    recomputed from ``quantity_change`` and ``unit_cost``.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product_id = models.CharField(
        max_length=64,
        verbose_name=_('Product'),
    )
    location_id = models.CharField(
        max_length=50,
        verbose_name=_('Location'),
    )
    entry_type = models.CharField(
        max_length=20,
        choices=EntryType.choices,
        verbose_name=_('Type'),
    )

    quantity_change = models.IntegerField(
        verbose_name=_('Quantity change'),
        help_text=_('Positive = inbound, negative = outbound'),
    )
    balance_after = models.IntegerField(
        verbose_name=_('Balance after'),
    )

    unit_cost = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        default=Decimal('0'),
        verbose_name=_('Unit cost'),
    )
    average_cost_before = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        default=Decimal('0'),
        verbose_name=_('Average cost before'),
    )
    average_cost_after = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        default=Decimal('0'),
        verbose_name=_('Average cost after'),
    )
    resets_cost = models.BooleanField(
        default=False,
        verbose_name=_('Resets average cost'),
        help_text=_('Full recount: average cost becomes unit cost.'),
    )

    # Originating business object (order, purchase order, transfer, ...)
    reference_type = models.CharField(
        max_length=20,
        choices=ReferenceType.choices,
        blank=True,
        default='',
        verbose_name=_('Reference type'),
    )
    reference_id = models.CharField(
        max_length=100,
        blank=True,
        default='',
        verbose_name=_('Reference ID'),
    )

    timestamp = models.DateTimeField(
        default=timezone.now,
        verbose_name=_('Event time'),
    )
    sequence = models.PositiveBigIntegerField(
        verbose_name=_('Insertion sequence'),
    )
    actor = models.CharField(
        max_length=100,
        verbose_name=_('Actor'),
        help_text=_('User id, or the system actor for automated postings'),
    )
    notes = models.TextField(blank=True, default='', verbose_name=_('Notes'))
    metadata = models.JSONField(default=dict, blank=True, verbose_name=_('Metadata'))

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Written at'))

    objects = LedgerEntryQuerySet.as_manager()

    class Meta:
        verbose_name = _('Ledger entry')
        verbose_name_plural = _('Ledger entries')
        ordering = ['timestamp', 'sequence']
        constraints = [
            models.UniqueConstraint(
                fields=['product_id', 'location_id', 'sequence'],
                name='kardex_unique_entry_sequence',
            ),
            models.CheckConstraint(
                condition=~Q(quantity_change=0),
                name='kardex_entry_nonzero_change',
            ),
        ]
        indexes = [
            models.Index(
                fields=['product_id', 'location_id', 'timestamp', 'sequence'],
                name='kardex_entry_key_order_idx',
            ),
            models.Index(fields=['product_id', 'timestamp'], name='kardex_entry_product_ts_idx'),
            models.Index(fields=['reference_type', 'reference_id'], name='kardex_entry_reference_idx'),
        ]

    @property
    def is_inbound(self) -> bool:
        return self.quantity_change > 0

    @property
    def is_outbound(self) -> bool:
        return self.quantity_change < 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.product_id, self.location_id)

    def save(self, *args, **kwargs):
        """Insert only."""
        if not self._state.adding:
            raise InvalidEntry(
                message="Ledger entries are immutable. Post an ADJUSTMENT instead.",
                entry_id=str(self.pk),
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Prevent deletion — entries are immutable."""
        raise InvalidEntry(
            message="Ledger entries are immutable. Post an ADJUSTMENT instead.",
            entry_id=str(self.pk),
        )

    def __str__(self) -> str:
        signal = '+' if self.quantity_change > 0 else ''
        return (
            f"{self.product_id}@{self.location_id} {self.entry_type} "
            f"{signal}{self.quantity_change} → {self.balance_after}"
        )
