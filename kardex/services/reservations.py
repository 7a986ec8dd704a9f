"""
Reservation ledger — holds on available stock (reserve, release, commit).

A reservation lowers available without touching on_hand. commit() turns it
into a SALE through the normal movement path, so the sale is validated and
written exactly like any other.

Lock order is always reservation row, then balance row. reserve() takes
only the balance row, so the two paths cannot deadlock.
"""

import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from kardex.conf import kardex_settings
from kardex.exceptions import InsufficientAvailable, InvalidReservation
from kardex.models.entry import LedgerEntry
from kardex.models.enums import ReservationStatus
from kardex.models.reservation import Reservation
from kardex.services.locking import lock_key
from kardex.services.movements import StockMovements, _check_quantity

logger = logging.getLogger('kardex')


def _parse_reservation_id(reservation_id: str) -> int:
    """Extract PK from reservation_id."""
    if reservation_id and reservation_id.startswith('reservation:'):
        try:
            return int(reservation_id.split(':')[1])
        except (IndexError, ValueError):
            pass
    raise InvalidReservation(reservation_id=reservation_id)


class ReservationLedger:
    """Reservation lifecycle methods."""

    def __init__(self, movements: StockMovements | None = None):
        self.movements = movements or StockMovements()
        self.reconstructor = self.movements.reconstructor
        self.aggregator = self.movements.aggregator

    def reserve(self, quantity: int, product_id: str, location_id: str | None = None,
                reference_id: str = '', expires_at=None, actor: str | None = None,
                **metadata) -> str:
        """
        Hold ``quantity`` units of a key for a pending order.

        Returns:
            reservation_id in format "reservation:{pk}"

        Raises:
            InsufficientAvailable: If on_hand - reserved < quantity
        """
        quantity = _check_quantity(quantity)
        location_id = location_id or kardex_settings.DEFAULT_LOCATION

        if expires_at is None and kardex_settings.RESERVATION_TTL_MINUTES:
            expires_at = timezone.now() + timedelta(minutes=kardex_settings.RESERVATION_TTL_MINUTES)

        with transaction.atomic():
            lock_key(product_id, location_id)
            current = self.reconstructor.current_balance(product_id, location_id)
            reserved = Reservation.objects.reserved(product_id, location_id)
            available = current.on_hand - reserved

            if available < quantity:
                raise InsufficientAvailable(
                    message=(
                        f"Only {available} of {product_id}@{location_id} is available, "
                        f"requested {quantity}"
                    ),
                    product_id=product_id,
                    location_id=location_id,
                    available=available,
                    requested=quantity,
                )

            reservation = Reservation.objects.create(
                product_id=product_id,
                location_id=location_id,
                quantity=quantity,
                reference_id=reference_id,
                actor=actor or kardex_settings.SYSTEM_ACTOR,
                expires_at=expires_at,
                metadata=metadata,
            )
            self.aggregator.refresh(product_id, [location_id])

        logger.info(
            "kardex.reservation.created",
            extra={
                "product": product_id,
                "location": location_id,
                "qty": quantity,
                "reservation_id": reservation.reservation_id,
            },
        )
        return reservation.reservation_id

    def release(self, reservation_id: str, reason: str = 'released') -> Reservation:
        """
        Drop a reservation. on_hand is untouched; it was never consumed.

        Transition: PENDING -> RELEASED
        """
        with transaction.atomic():
            reservation = self._lock_pending(reservation_id)
            lock_key(reservation.product_id, reservation.location_id)

            reservation.status = ReservationStatus.RELEASED
            reservation.resolved_at = timezone.now()
            reservation.metadata['release_reason'] = reason
            reservation.save(update_fields=['status', 'resolved_at', 'metadata'])
            self.aggregator.refresh(reservation.product_id, [reservation.location_id])

        logger.info(
            "kardex.reservation.released",
            extra={"reservation_id": reservation_id, "reason": reason},
        )
        return reservation

    def commit(self, reservation_id: str, reference_id: str | None = None,
               actor: str | None = None, notes: str = '') -> LedgerEntry:
        """
        Convert a reservation into a SALE of the same quantity.

        The held units are the ones being sold, so only on_hand bounds the
        commit. If other backorder sales ate into them, available goes
        negative and the product is flagged as backordered.

        Transition: PENDING -> COMMITTED

        Returns:
            The SALE ledger entry

        Raises:
            InvalidReservation('RESERVATION_EXPIRED'): If past expires_at
            InsufficientStock: If on_hand no longer covers the quantity
        """
        with transaction.atomic():
            reservation = self._lock_pending(reservation_id)

            if reservation.is_expired:
                raise InvalidReservation(
                    'RESERVATION_EXPIRED',
                    reservation_id=reservation_id,
                    expires_at=reservation.expires_at.isoformat(),
                )

            # Leaves the active set first so the sale does not count its own hold
            reservation.status = ReservationStatus.COMMITTED
            reservation.resolved_at = timezone.now()
            reservation.save(update_fields=['status', 'resolved_at'])

            entry = self.movements.sale(
                reservation.quantity,
                reservation.product_id,
                reservation.location_id,
                reference_id=reference_id or reservation.reference_id,
                actor=actor or reservation.actor,
                notes=notes,
                reservation=reservation_id,
                allow_backorder=True,
            )

            reservation.sale_entry = entry
            reservation.save(update_fields=['sale_entry'])

        logger.info(
            "kardex.reservation.committed",
            extra={
                "reservation_id": reservation_id,
                "qty": reservation.quantity,
                "entry_id": str(entry.pk),
            },
        )
        return entry

    def get(self, reservation_id: str) -> Reservation:
        pk = _parse_reservation_id(reservation_id)
        try:
            return Reservation.objects.get(pk=pk)
        except Reservation.DoesNotExist:
            raise InvalidReservation(reservation_id=reservation_id) from None

    def reserved(self, product_id: str, location_id: str) -> int:
        return Reservation.objects.reserved(product_id, location_id)

    def release_expired(self) -> int:
        """
        Release all expired reservations in batches.

        Returns:
            Number of reservations released

        Concurrency:
            - Each batch runs under its own transaction.atomic()
            - Uses select_for_update() with SKIP LOCKED
            - Caches are refreshed per key afterwards, each under its own lock
        """
        now = timezone.now()
        total = 0
        batch_size = kardex_settings.EXPIRED_BATCH_SIZE
        touched = set()

        while True:
            with transaction.atomic():
                batch = list(
                    Reservation.objects.select_for_update(skip_locked=True)
                    .expired(now)
                    .values_list('pk', 'product_id', 'location_id')[:batch_size]
                )

                if not batch:
                    break

                Reservation.objects.filter(pk__in=[pk for pk, _, _ in batch]).update(
                    status=ReservationStatus.RELEASED,
                    resolved_at=now,
                )
                touched.update((product_id, location_id) for _, product_id, location_id in batch)
                total += len(batch)

        for product_id, location_id in sorted(touched):
            with transaction.atomic():
                lock_key(product_id, location_id)
                self.aggregator.refresh(product_id, [location_id])

        if total:
            logger.info(
                "kardex.reservations.expired_released",
                extra={"released": total},
            )
        return total

    def _lock_pending(self, reservation_id: str) -> Reservation:
        pk = _parse_reservation_id(reservation_id)
        try:
            reservation = Reservation.objects.select_for_update().get(pk=pk)
        except Reservation.DoesNotExist:
            raise InvalidReservation(reservation_id=reservation_id) from None

        if reservation.status != ReservationStatus.PENDING:
            raise InvalidReservation(
                'INVALID_STATUS',
                reservation_id=reservation_id,
                current=reservation.status,
                expected=ReservationStatus.PENDING,
            )
        return reservation
