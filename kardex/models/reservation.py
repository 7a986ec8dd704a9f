"""
Reservation model — Quantity held against on-hand stock.
"""

from django.db import models
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from kardex.models.enums import ReservationStatus


class ReservationQuerySet(models.QuerySet):

    def for_key(self, product_id: str, location_id: str):
        return self.filter(product_id=product_id, location_id=location_id)

    def active(self, now=None):
        """
        Pending and not expired.

        Expired reservations stop counting immediately, regardless of when
        the release job runs.
        """
        now = now or timezone.now()
        return self.filter(status=ReservationStatus.PENDING).filter(
            Q(expires_at__isnull=True) | Q(expires_at__gte=now)
        )

    def expired(self, now=None):
        now = now or timezone.now()
        return self.filter(status=ReservationStatus.PENDING, expires_at__lt=now)

    def total(self) -> int:
        return self.aggregate(
            t=Coalesce(Sum('quantity'), 0, output_field=models.IntegerField())
        )['t']

    def reserved(self, product_id: str, location_id: str) -> int:
        """Outstanding reserved quantity for a key."""
        return self.for_key(product_id, location_id).active().total()


class Reservation(models.Model):
    """
    Stock promised to a pending order.

    LIFECYCLE:

        PENDING ──commit()──► COMMITTED   (SALE entry appended)
           │
           └──release()/expiry──► RELEASED

    A reservation never touches on_hand. It only lowers available until it
    is committed (turned into a SALE) or released.
    """

    product_id = models.CharField(max_length=64, verbose_name=_('Product'))
    location_id = models.CharField(max_length=50, verbose_name=_('Location'))
    quantity = models.PositiveIntegerField(verbose_name=_('Quantity'))

    status = models.CharField(
        max_length=20,
        choices=ReservationStatus.choices,
        default=ReservationStatus.PENDING,
        verbose_name=_('Status'),
    )

    # Order or cart the stock is promised to
    reference_id = models.CharField(max_length=100, blank=True, default='')
    actor = models.CharField(max_length=100, blank=True, default='')

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name=_('Expires at'),
        help_text=_('Released automatically if not committed by then'),
    )
    sale_entry = models.ForeignKey(
        'kardex.LedgerEntry',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Sale entry'),
    )

    created_at = models.DateTimeField(default=timezone.now)
    resolved_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Resolved at'))
    metadata = models.JSONField(default=dict, blank=True)

    objects = ReservationQuerySet.as_manager()

    class Meta:
        verbose_name = _('Reservation')
        verbose_name_plural = _('Reservations')
        indexes = [
            models.Index(fields=['product_id', 'location_id', 'status'], name='kardex_res_key_status_idx'),
            models.Index(fields=['status', 'expires_at'], name='kardex_res_status_exp_idx'),
        ]

    @property
    def is_active(self) -> bool:
        if self.status != ReservationStatus.PENDING:
            return False
        if self.expires_at is None:
            return True
        return timezone.now() <= self.expires_at

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return timezone.now() > self.expires_at

    @property
    def reservation_id(self) -> str:
        """Return reservation identifier in standard format."""
        return f"reservation:{self.pk}"

    def __str__(self) -> str:
        return f"{self.reservation_id} {self.quantity}x {self.product_id}@{self.location_id} ({self.status})"
