"""
Stock movements — the only sanctioned writers of the kardex.

Every operation:
1. Locks the balance row of each key it touches
2. Re-folds the key's ledger under that lock
3. Validates its pre-condition against the fold
4. Appends one entry (two for a transfer)
5. Refreshes the product's cached aggregate

All of it runs inside one transaction.atomic(): an operation either commits
every entry and cache update or none of them.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from kardex.conf import kardex_settings
from kardex.exceptions import (
    InsufficientAvailable,
    InsufficientStock,
    InvalidAdjustment,
    InvalidEntry,
    KardexError,
)
from kardex.models.entry import LedgerEntry
from kardex.models.enums import AdjustmentReason, EntryType, ReferenceType
from kardex.models.reservation import Reservation
from kardex.services.aggregator import StockAggregator
from kardex.services.locking import lock_key, lock_keys
from kardex.services.reconstructor import BalanceReconstructor
from kardex.services.store import LedgerStore

logger = logging.getLogger('kardex')


def _check_quantity(quantity) -> int:
    """Movement quantities are positive integers."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidEntry(
            message=f"Quantity must be a positive integer, got {quantity!r}",
            requested=quantity,
        )
    return quantity


def _check_cost(unit_cost) -> Decimal:
    if unit_cost is None:
        raise InvalidEntry(message="unit_cost is required")
    cost = Decimal(str(unit_cost))
    if cost < 0:
        raise InvalidEntry(message="unit_cost must be zero or positive", unit_cost=cost)
    return cost


@dataclass
class BulkResult:
    """Outcome of a bulk load: rows loaded and per-row failures."""

    loaded: int = 0
    failed: list[tuple[int, dict]] = field(default_factory=list)


class StockMovements:
    """Initial load, purchase, sale, adjustment, transfer and returns."""

    def __init__(self, store: LedgerStore | None = None,
                 reconstructor: BalanceReconstructor | None = None,
                 aggregator: StockAggregator | None = None):
        self.store = store or LedgerStore()
        self.reconstructor = reconstructor or BalanceReconstructor(self.store)
        self.aggregator = aggregator or StockAggregator(self.reconstructor)

    # ══════════════════════════════════════════════════════════════
    # INBOUND
    # ══════════════════════════════════════════════════════════════

    def initial_load(self, quantity: int, product_id: str, location_id: str | None = None,
                     unit_cost=Decimal('0'), override: bool = False, timestamp=None,
                     reference_id: str = '', actor: str | None = None, notes: str = '',
                     **metadata) -> LedgerEntry:
        """
        Opening balance for a key.

        Raises:
            InvalidEntry: If the key already holds stock and ``override``
                (explicit backfill) is not set
        """
        quantity = _check_quantity(quantity)
        cost = _check_cost(unit_cost)
        location_id = location_id or kardex_settings.DEFAULT_LOCATION

        with transaction.atomic():
            lock_key(product_id, location_id)
            entries = self.store.list_by_product_location(product_id, location_id)
            current = self.reconstructor.fold(entries, product_id, location_id)

            if current.on_hand != 0 and not override:
                raise InvalidEntry(
                    message=(
                        f"Initial load requires an empty balance: "
                        f"{product_id}@{location_id} has {current.on_hand}"
                    ),
                    product_id=product_id,
                    location_id=location_id,
                    on_hand=current.on_hand,
                )

            entry = self._draft(
                EntryType.INITIAL_LOAD, quantity, product_id, location_id,
                unit_cost=cost, timestamp=timestamp,
                reference_type=ReferenceType.BACKFILL if override else '',
                reference_id=reference_id, actor=actor, notes=notes, metadata=metadata,
            )
            self._post(entries, entry, self._insufficient_stock)
            self.aggregator.refresh(product_id, [location_id])

        logger.info(
            "kardex.initial_load",
            extra={
                "product": product_id,
                "location": location_id,
                "qty": quantity,
                "unit_cost": str(cost),
                "override": override,
            },
        )
        return entry

    def purchase(self, quantity: int, product_id: str, location_id: str | None = None,
                 unit_cost=None, reference_id: str = '', actor: str | None = None,
                 notes: str = '', timestamp=None, **metadata) -> LedgerEntry:
        """Restock from a supplier at ``unit_cost``. Average cost is reweighted."""
        quantity = _check_quantity(quantity)
        cost = _check_cost(unit_cost)
        location_id = location_id or kardex_settings.DEFAULT_LOCATION

        with transaction.atomic():
            lock_key(product_id, location_id)
            entries = self.store.list_by_product_location(product_id, location_id)
            self.reconstructor.fold(entries, product_id, location_id)

            entry = self._draft(
                EntryType.PURCHASE, quantity, product_id, location_id,
                unit_cost=cost, timestamp=timestamp,
                reference_type=ReferenceType.PURCHASE_ORDER, reference_id=reference_id,
                actor=actor, notes=notes, metadata=metadata,
            )
            self._post(entries, entry, self._insufficient_stock)
            self.aggregator.refresh(product_id, [location_id])

        logger.info(
            "kardex.purchase",
            extra={
                "product": product_id,
                "location": location_id,
                "qty": quantity,
                "unit_cost": str(cost),
                "average_cost": str(entry.average_cost_after),
            },
        )
        return entry

    def return_in(self, quantity: int, product_id: str, location_id: str | None = None,
                  unit_cost=None, reference_id: str = '', actor: str | None = None,
                  notes: str = '', timestamp=None, **metadata) -> LedgerEntry:
        """
        Customer return put back on the shelf.

        Costed at the key's current average unless ``unit_cost`` is given.
        """
        quantity = _check_quantity(quantity)
        location_id = location_id or kardex_settings.DEFAULT_LOCATION

        with transaction.atomic():
            lock_key(product_id, location_id)
            entries = self.store.list_by_product_location(product_id, location_id)
            self.reconstructor.fold(entries, product_id, location_id)

            entry = self._draft(
                EntryType.RETURN_IN, quantity, product_id, location_id,
                timestamp=timestamp, reference_type=ReferenceType.RETURN,
                reference_id=reference_id, actor=actor, notes=notes, metadata=metadata,
            )
            if unit_cost is None:
                entry.unit_cost = self.reconstructor.state_before(entries, entry).average_cost
            else:
                entry.unit_cost = _check_cost(unit_cost)
            self._post(entries, entry, self._insufficient_stock)
            self.aggregator.refresh(product_id, [location_id])

        logger.info(
            "kardex.return_in",
            extra={"product": product_id, "location": location_id, "qty": quantity},
        )
        return entry

    # ══════════════════════════════════════════════════════════════
    # OUTBOUND
    # ══════════════════════════════════════════════════════════════

    def sale(self, quantity: int, product_id: str, location_id: str | None = None,
             allow_backorder: bool = False, reference_id: str = '',
             actor: str | None = None, notes: str = '', timestamp=None,
             **metadata) -> LedgerEntry:
        """
        Deduct sold units.

        On-hand can never go below zero. Units held by reservations are
        protected unless ``allow_backorder`` is set, in which case the sale
        may leave available negative (flagged as backorder).

        Raises:
            InsufficientStock: If quantity > on_hand
            InsufficientAvailable: If quantity > available and no backorder
        """
        quantity = _check_quantity(quantity)
        location_id = location_id or kardex_settings.DEFAULT_LOCATION

        with transaction.atomic():
            lock_key(product_id, location_id)
            entries = self.store.list_by_product_location(product_id, location_id)
            current = self.reconstructor.fold(entries, product_id, location_id)
            self._check_outbound(current.on_hand, quantity, product_id, location_id,
                                 allow_backorder=allow_backorder)

            entry = self._draft(
                EntryType.SALE, -quantity, product_id, location_id,
                timestamp=timestamp, reference_type=ReferenceType.ORDER,
                reference_id=reference_id, actor=actor, notes=notes, metadata=metadata,
            )
            self._post(entries, entry, self._insufficient_stock)
            aggregate = self.aggregator.refresh(product_id, [location_id])

        logger.info(
            "kardex.sale",
            extra={
                "product": product_id,
                "location": location_id,
                "qty": quantity,
                "balance": entry.balance_after,
                "backordered": aggregate.backordered,
            },
        )
        return entry

    def return_out(self, quantity: int, product_id: str, location_id: str | None = None,
                   reference_id: str = '', actor: str | None = None, notes: str = '',
                   timestamp=None, **metadata) -> LedgerEntry:
        """Send units back to the supplier. Same pre-condition as a sale."""
        quantity = _check_quantity(quantity)
        location_id = location_id or kardex_settings.DEFAULT_LOCATION

        with transaction.atomic():
            lock_key(product_id, location_id)
            entries = self.store.list_by_product_location(product_id, location_id)
            current = self.reconstructor.fold(entries, product_id, location_id)
            self._check_outbound(current.on_hand, quantity, product_id, location_id)

            entry = self._draft(
                EntryType.RETURN_OUT, -quantity, product_id, location_id,
                timestamp=timestamp, reference_type=ReferenceType.RETURN,
                reference_id=reference_id, actor=actor, notes=notes, metadata=metadata,
            )
            self._post(entries, entry, self._insufficient_stock)
            self.aggregator.refresh(product_id, [location_id])

        logger.info(
            "kardex.return_out",
            extra={"product": product_id, "location": location_id, "qty": quantity},
        )
        return entry

    # ══════════════════════════════════════════════════════════════
    # CORRECTIONS
    # ══════════════════════════════════════════════════════════════

    def adjust(self, quantity_change: int, product_id: str, location_id: str | None = None,
               reason: str = '', unit_cost=None, reset_cost: bool = False,
               reference_id: str = '', actor: str | None = None, notes: str = '',
               timestamp=None, **metadata) -> LedgerEntry:
        """
        Signed manual correction.

        A positive adjustment is costed at the current average unless
        ``unit_cost`` is given. ``reset_cost`` (full recount) replaces the
        average with ``unit_cost``.

        Raises:
            InvalidEntry: Zero change, unknown reason, reset without cost
            InvalidAdjustment: If the balance would go below zero
        """
        if isinstance(quantity_change, bool) or not isinstance(quantity_change, int) \
                or quantity_change == 0:
            raise InvalidEntry(
                message=f"Adjustment must be a non-zero integer, got {quantity_change!r}",
                requested=quantity_change,
            )
        if reason not in AdjustmentReason.values:
            raise InvalidEntry(
                message=f"Adjustment reason is required, one of: {', '.join(AdjustmentReason.values)}",
                reason=reason,
            )
        if reset_cost and unit_cost is None:
            raise InvalidEntry(message="A cost reset needs unit_cost")
        location_id = location_id or kardex_settings.DEFAULT_LOCATION

        with transaction.atomic():
            lock_key(product_id, location_id)
            entries = self.store.list_by_product_location(product_id, location_id)
            current = self.reconstructor.fold(entries, product_id, location_id)

            if current.on_hand + quantity_change < 0:
                raise InvalidAdjustment(
                    message=(
                        f"adjustment would result in negative stock: "
                        f"current {current.on_hand}, adjustment {quantity_change}"
                    ),
                    product_id=product_id,
                    location_id=location_id,
                    available=current.on_hand,
                    requested=quantity_change,
                )

            entry = self._draft(
                EntryType.ADJUSTMENT, quantity_change, product_id, location_id,
                timestamp=timestamp, reference_type=ReferenceType.ADJUSTMENT,
                reference_id=reference_id, actor=actor,
                notes=f"{reason}: {notes}" if notes else reason,
                metadata={**metadata, 'reason': reason},
            )
            entry.resets_cost = reset_cost
            if unit_cost is not None:
                entry.unit_cost = _check_cost(unit_cost)
            else:
                entry.unit_cost = self.reconstructor.state_before(entries, entry).average_cost
            self._post(entries, entry, self._invalid_adjustment)
            aggregate = self.aggregator.refresh(product_id, [location_id])

        logger.info(
            "kardex.adjust",
            extra={
                "product": product_id,
                "location": location_id,
                "delta": quantity_change,
                "reason": reason,
                "reset_cost": reset_cost,
                "backordered": aggregate.backordered,
            },
        )
        return entry

    def recount(self, counted_quantity: int, product_id: str, location_id: str | None = None,
                unit_cost=None, actor: str | None = None, notes: str = '',
                **metadata) -> LedgerEntry | None:
        """
        Full physical recount.

        Computes the delta automatically: counted_quantity - on_hand. A
        supplied ``unit_cost`` resets the average. Returns None when the
        count matches, since a ledger entry cannot carry a zero change.
        """
        if isinstance(counted_quantity, bool) or not isinstance(counted_quantity, int) \
                or counted_quantity < 0:
            raise InvalidEntry(
                message=f"Counted quantity must be a non-negative integer, got {counted_quantity!r}",
                requested=counted_quantity,
            )
        location_id = location_id or kardex_settings.DEFAULT_LOCATION

        with transaction.atomic():
            lock_key(product_id, location_id)
            current = self.reconstructor.current_balance(product_id, location_id)
            delta = counted_quantity - current.on_hand

            if delta == 0:
                return None

            return self.adjust(
                delta, product_id, location_id,
                reason=AdjustmentReason.RECOUNT,
                unit_cost=unit_cost,
                reset_cost=unit_cost is not None,
                actor=actor,
                notes=notes,
                **metadata,
            )

    # ══════════════════════════════════════════════════════════════
    # TRANSFER
    # ══════════════════════════════════════════════════════════════

    def transfer(self, quantity: int, product_id: str, from_location: str,
                 to_location: str, transfer_id: str | None = None,
                 actor: str | None = None, notes: str = '', timestamp=None,
                 **metadata) -> tuple[LedgerEntry, LedgerEntry]:
        """
        Move stock between locations as a balanced pair of entries.

        TRANSFER_OUT (-N) at the source and TRANSFER_IN (+N) at the
        destination share ``transfer_id`` as reference. The destination
        receives the units at the source's average cost. Only on_hand
        bounds the move: reserved units may leave, leaving the source
        backordered.

        Raises:
            InvalidEntry: Same source and destination
            InsufficientStock: If quantity > source on_hand
        """
        quantity = _check_quantity(quantity)
        if from_location == to_location:
            raise InvalidEntry(
                message=f"Transfer source and destination are both {from_location}",
                location_id=from_location,
            )
        transfer_id = transfer_id or f"TRF-{uuid.uuid4().hex[:12].upper()}"
        timestamp = timestamp or timezone.now()

        with transaction.atomic():
            lock_keys([(product_id, from_location), (product_id, to_location)])

            source_entries = self.store.list_by_product_location(product_id, from_location)
            source = self.reconstructor.fold(source_entries, product_id, from_location)
            # Reserved units may leave; the source is then flagged as backordered
            self._check_outbound(source.on_hand, quantity, product_id, from_location,
                                 allow_backorder=True)

            dest_entries = self.store.list_by_product_location(product_id, to_location)
            self.reconstructor.fold(dest_entries, product_id, to_location)

            out_entry = self._draft(
                EntryType.TRANSFER_OUT, -quantity, product_id, from_location,
                timestamp=timestamp, reference_type=ReferenceType.TRANSFER,
                reference_id=transfer_id, actor=actor, notes=notes,
                metadata={**metadata, 'to_location': to_location},
            )
            self._post(source_entries, out_entry, self._insufficient_stock)

            in_entry = self._draft(
                EntryType.TRANSFER_IN, quantity, product_id, to_location,
                unit_cost=out_entry.unit_cost, timestamp=timestamp,
                reference_type=ReferenceType.TRANSFER, reference_id=transfer_id,
                actor=actor, notes=notes,
                metadata={**metadata, 'from_location': from_location},
            )
            self._post(dest_entries, in_entry, self._insufficient_stock)

            self.aggregator.refresh(product_id, [from_location, to_location])

        logger.info(
            "kardex.transfer",
            extra={
                "product": product_id,
                "from": from_location,
                "to": to_location,
                "qty": quantity,
                "transfer_id": transfer_id,
                "unit_cost": str(in_entry.unit_cost),
            },
        )
        return out_entry, in_entry

    # ══════════════════════════════════════════════════════════════
    # BULK
    # ══════════════════════════════════════════════════════════════

    def initial_load_many(self, rows, batch_size: int | None = None) -> BulkResult:
        """
        Load opening balances for many keys.

        Each row is a dict of initial_load() arguments and commits on its
        own, so a key is locked only while its own entry is appended. Rows
        are processed in batches of ``batch_size`` for progress reporting;
        a failing row is recorded and does not stop the load.
        """
        batch_size = batch_size or kardex_settings.BULK_BATCH_SIZE
        rows = list(rows)
        result = BulkResult()

        for start in range(0, len(rows), batch_size):
            batch = rows[start:start + batch_size]
            for offset, row in enumerate(batch):
                try:
                    self.initial_load(**row)
                except KardexError as exc:
                    result.failed.append((start + offset, exc.as_dict()))
                else:
                    result.loaded += 1

            logger.info(
                "kardex.bulk.batch",
                extra={
                    "start": start,
                    "size": len(batch),
                    "loaded": result.loaded,
                    "failed": len(result.failed),
                },
            )

        return result

    # ══════════════════════════════════════════════════════════════
    # INTERNALS
    # ══════════════════════════════════════════════════════════════

    def _draft(self, entry_type, quantity_change, product_id, location_id,
               unit_cost=Decimal('0'), timestamp=None, reference_type='',
               reference_id='', actor=None, notes='', metadata=None) -> LedgerEntry:
        return LedgerEntry(
            product_id=product_id,
            location_id=location_id,
            entry_type=entry_type,
            quantity_change=quantity_change,
            unit_cost=unit_cost,
            timestamp=timestamp or timezone.now(),
            reference_type=reference_type,
            reference_id=reference_id or '',
            actor=actor or kardex_settings.SYSTEM_ACTOR,
            notes=notes or '',
            metadata=metadata or {},
        )

    def _post(self, entries, entry: LedgerEntry, on_negative) -> None:
        """
        Fill the entry's snapshots at its position and append it.

        ``on_negative`` builds the error raised when the replay with the
        entry inserted goes below zero anywhere (a backdated outbound entry
        can do that even when today's balance covers it).
        """
        if entry.quantity_change < 0 and not entry.resets_cost:
            entry.unit_cost = self.reconstructor.state_before(entries, entry).average_cost

        projection = self.reconstructor.project(entries, entry)
        if projection.lowest_on_hand < 0:
            raise on_negative(entry, projection)

        entry.balance_after = projection.after.on_hand
        entry.average_cost_before = projection.before.average_cost
        entry.average_cost_after = projection.after.average_cost
        self.store.append(entry)

    def _check_outbound(self, on_hand: int, quantity: int, product_id: str,
                        location_id: str, allow_backorder: bool = False) -> None:
        if on_hand < quantity:
            raise InsufficientStock(
                message=(
                    f"Insufficient stock, please adjust quantity: "
                    f"{product_id}@{location_id} has {on_hand}, requested {quantity}"
                ),
                product_id=product_id,
                location_id=location_id,
                available=on_hand,
                requested=quantity,
            )

        if allow_backorder:
            return

        available = on_hand - Reservation.objects.reserved(product_id, location_id)
        if available < quantity:
            raise InsufficientAvailable(
                message=(
                    f"Only {available} of {product_id}@{location_id} is available "
                    f"({on_hand} on hand), requested {quantity}"
                ),
                product_id=product_id,
                location_id=location_id,
                available=available,
                requested=quantity,
            )

    @staticmethod
    def _insufficient_stock(entry, projection):
        return InsufficientStock(
            message=(
                f"Insufficient stock as of {entry.timestamp.isoformat()}: "
                f"{entry.product_id}@{entry.location_id} would reach {projection.lowest_on_hand}"
            ),
            product_id=entry.product_id,
            location_id=entry.location_id,
            available=projection.before.on_hand,
            requested=-entry.quantity_change,
        )

    @staticmethod
    def _invalid_adjustment(entry, projection):
        return InvalidAdjustment(
            message=(
                f"adjustment would result in negative stock: "
                f"current {projection.before.on_hand}, adjustment {entry.quantity_change}"
            ),
            product_id=entry.product_id,
            location_id=entry.location_id,
            available=projection.before.on_hand,
            requested=entry.quantity_change,
        )
