"""
ProductStock model — Materialized product-level stock rollup.
"""

from decimal import Decimal

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class ProductStock(models.Model):
    """
    Product-level aggregate read by the catalog.

    stock_quantity = Σ on_hand over locations
    available_stock = Σ available over locations
    inventory = {location: {stock, reserved, available, average_cost}}

    This is a cache with a single writer. Only StockAggregator.refresh()
    may save it; any other save() raises.
    """

    product_id = models.CharField(primary_key=True, max_length=64, verbose_name=_('Product'))

    stock_quantity = models.IntegerField(default=0, verbose_name=_('Stock quantity'))
    reserved_quantity = models.IntegerField(default=0, verbose_name=_('Reserved'))
    available_stock = models.IntegerField(default=0, verbose_name=_('Available stock'))
    total_value = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        default=Decimal('0'),
        verbose_name=_('Inventory value'),
    )
    inventory = models.JSONField(default=dict, blank=True, verbose_name=_('Per-location stock'))
    backordered = models.BooleanField(
        default=False,
        verbose_name=_('Backordered'),
        help_text=_('Some location has more reserved than on hand.'),
    )

    refreshed_at = models.DateTimeField(default=timezone.now, verbose_name=_('Refreshed at'))

    class Meta:
        verbose_name = _('Product stock')
        verbose_name_plural = _('Product stock')

    def save(self, *args, refreshed: bool = False, **kwargs):
        if not refreshed:
            raise ValueError(
                "ProductStock is derived from the ledger. "
                "Use StockAggregator.refresh() instead of writing it."
            )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_id}: {self.stock_quantity} ({self.available_stock} available)"
