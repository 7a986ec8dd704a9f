"""
LocationBalance model — Latest fold result per (product, location).
"""

from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _


class LocationBalance(models.Model):
    """
    Cached balance of a product at one location.

    The row has three jobs:
    - It is the lock target that serializes writers of its key
    - It owns the key's insertion ``last_sequence`` counter
    - It caches the latest full fold (on_hand, average_cost, reserved)

    The cached figures are recomputed from the ledger after every append
    to the key, never incremented in place. Use StockAggregator.refresh()
    to rebuild and LedgerAuditor to compare against a replay.
    """

    product_id = models.CharField(max_length=64, verbose_name=_('Product'))
    location_id = models.CharField(max_length=50, verbose_name=_('Location'))

    on_hand = models.IntegerField(default=0, verbose_name=_('On hand'))
    reserved = models.IntegerField(default=0, verbose_name=_('Reserved'))
    average_cost = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        default=Decimal('0'),
        verbose_name=_('Average cost'),
    )

    last_sequence = models.PositiveBigIntegerField(
        default=0,
        verbose_name=_('Last sequence'),
    )
    entry_count = models.PositiveIntegerField(default=0)
    last_timestamp = models.DateTimeField(null=True, blank=True)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Location balance')
        verbose_name_plural = _('Location balances')
        constraints = [
            models.UniqueConstraint(
                fields=['product_id', 'location_id'],
                name='kardex_unique_balance_key',
            )
        ]

    @property
    def available(self) -> int:
        """on_hand - reserved. Negative means backorder, never clamped."""
        return self.on_hand - self.reserved

    @property
    def is_backordered(self) -> bool:
        return self.available < 0

    @property
    def total_value(self) -> Decimal:
        return self.on_hand * self.average_cost

    def __str__(self) -> str:
        return f"{self.product_id} [{self.location_id}]: {self.on_hand} ({self.reserved} reserved)"
