"""
Location model — Where stock is kept.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _

from kardex.models.enums import LocationKind


class Location(models.Model):
    """
    Stock location: our warehouse or a marketplace fulfillment center.

    Locations are stable entities, created during system setup.
    Ledger entries reference them by ``code``.

    Examples:
        Location.objects.create(code='MAIN', name='Main warehouse')
        Location.objects.create(code='AMAZON_FBA', name='Amazon FBA',
                                kind=LocationKind.FBA, is_virtual=True)
    """

    code = models.CharField(
        unique=True,
        max_length=50,
        verbose_name=_('Code'),
        help_text=_('Unique identifier (e.g. MAIN, AMAZON_FBA, MELI_FULL)'),
    )
    name = models.CharField(
        max_length=100,
        verbose_name=_('Name'),
    )
    kind = models.CharField(
        max_length=20,
        choices=LocationKind.choices,
        default=LocationKind.WAREHOUSE,
        verbose_name=_('Kind'),
    )
    is_virtual = models.BooleanField(
        default=False,
        verbose_name=_('Third-party controlled'),
        help_text=_('Stock here is operated by a marketplace, not by our staff.'),
    )
    is_active = models.BooleanField(
        default=True,
        verbose_name=_('Active'),
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        verbose_name=_('Metadata'),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Location')
        verbose_name_plural = _('Locations')
        ordering = ['code']

    def __str__(self) -> str:
        return self.code
