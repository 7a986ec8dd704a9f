"""
Multi-location aggregator — product-level stock from per-location folds.

aggregate() is a pure function of the ledger and the active reservations.
refresh() is the only writer of the LocationBalance figures and of
ProductStock, and it always writes a fresh aggregate, never a delta.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from kardex import costing
from kardex.models.balance import LocationBalance
from kardex.models.product_stock import ProductStock
from kardex.models.reservation import Reservation
from kardex.services import locking
from kardex.services.reconstructor import Balance, BalanceReconstructor

logger = logging.getLogger('kardex')


@dataclass(frozen=True)
class LocationStock:
    """Stock of a product at one location."""

    location_id: str
    stock: int
    reserved: int
    average_cost: Decimal = costing.ZERO

    @property
    def available(self) -> int:
        """stock - reserved. Negative is a backorder signal."""
        return self.stock - self.reserved

    @property
    def total_value(self) -> Decimal:
        return self.stock * self.average_cost

    def as_dict(self) -> dict:
        return {
            'stock': self.stock,
            'reserved': self.reserved,
            'available': self.available,
            'average_cost': str(self.average_cost),
        }


@dataclass(frozen=True)
class ProductStockAggregate:
    """Product-level rollup over every location with ledger history."""

    product_id: str
    inventory: dict[str, LocationStock] = field(default_factory=dict)

    @property
    def stock_quantity(self) -> int:
        return sum(loc.stock for loc in self.inventory.values())

    @property
    def reserved_quantity(self) -> int:
        return sum(loc.reserved for loc in self.inventory.values())

    @property
    def available_stock(self) -> int:
        return sum(loc.available for loc in self.inventory.values())

    @property
    def total_value(self) -> Decimal:
        return sum((loc.total_value for loc in self.inventory.values()), costing.ZERO)

    @property
    def backordered(self) -> bool:
        return any(loc.available < 0 for loc in self.inventory.values())

    def inventory_dict(self) -> dict:
        return {code: loc.as_dict() for code, loc in sorted(self.inventory.items())}


class StockAggregator:
    """Builds and materializes ProductStockAggregate."""

    def __init__(self, reconstructor: BalanceReconstructor | None = None):
        self.reconstructor = reconstructor or BalanceReconstructor()
        self.store = self.reconstructor.store

    def location_stock(self, product_id: str, location_id: str,
                       balance: Balance | None = None) -> LocationStock:
        if balance is None:
            balance = self.reconstructor.current_balance(product_id, location_id)
        return LocationStock(
            location_id=location_id,
            stock=balance.on_hand,
            reserved=Reservation.objects.reserved(product_id, location_id),
            average_cost=balance.average_cost,
        )

    def aggregate(self, product_id: str) -> ProductStockAggregate:
        """
        Fold every location known to the ledger for the product.

        Raises:
            LedgerInconsistency: If any location folds below zero
        """
        by_location = defaultdict(list)
        for entry in self.store.list_by_product(product_id):
            by_location[entry.location_id].append(entry)

        inventory = {}
        for location_id, entries in by_location.items():
            balance = self.reconstructor.fold(entries, product_id, location_id)
            inventory[location_id] = self.location_stock(product_id, location_id, balance)

        return ProductStockAggregate(product_id=product_id, inventory=inventory)

    def refresh(self, product_id: str, location_ids=None) -> ProductStockAggregate:
        """
        Recompute the product's caches from the ledger and persist them.

        Called by every movement and reservation operation after it writes.
        Only the LocationBalance rows of ``location_ids``, the keys the caller
        holds locked, are rewritten. ``None`` rewrites every location and is
        meant for rebuilds that hold every key of the product. The
        ProductStock row is locked after the key locks, and the fold is read
        under that lock.
        """
        now = timezone.now()

        with transaction.atomic():
            locking.lock_product(product_id)

            by_location = defaultdict(list)
            for entry in self.store.list_by_product(product_id):
                by_location[entry.location_id].append(entry)
            targets = set(by_location) if location_ids is None else set(location_ids)

            inventory = {}
            for location_id, entries in by_location.items():
                balance = self.reconstructor.fold(entries, product_id, location_id)
                stock = self.location_stock(product_id, location_id, balance)
                inventory[location_id] = stock
                if location_id not in targets:
                    continue

                LocationBalance.objects.update_or_create(
                    product_id=product_id,
                    location_id=location_id,
                    defaults={
                        'on_hand': stock.stock,
                        'reserved': stock.reserved,
                        'average_cost': stock.average_cost,
                        'entry_count': balance.entry_count,
                        'last_timestamp': balance.last_timestamp,
                        'last_sequence': max(e.sequence for e in entries),
                        'updated_at': now,
                    },
                )

            # Cached keys without ledger history hold nothing
            LocationBalance.objects.filter(
                product_id=product_id, location_id__in=targets.difference(by_location),
            ).update(
                on_hand=0,
                average_cost=costing.ZERO,
                entry_count=0,
                last_timestamp=None,
                updated_at=now,
            )

            aggregate = ProductStockAggregate(product_id=product_id, inventory=inventory)
            ProductStock(
                product_id=product_id,
                stock_quantity=aggregate.stock_quantity,
                reserved_quantity=aggregate.reserved_quantity,
                available_stock=aggregate.available_stock,
                total_value=aggregate.total_value,
                inventory=aggregate.inventory_dict(),
                backordered=aggregate.backordered,
                refreshed_at=now,
            ).save(refreshed=True)

        if aggregate.backordered:
            logger.warning(
                "kardex.backorder",
                extra={
                    "product": product_id,
                    "locations": [
                        code for code, loc in aggregate.inventory.items() if loc.available < 0
                    ],
                    "available": aggregate.available_stock,
                },
            )

        logger.debug(
            "kardex.aggregate.refreshed",
            extra={
                "product": product_id,
                "stock": aggregate.stock_quantity,
                "available": aggregate.available_stock,
            },
        )
        return aggregate

    def cached(self, product_id: str) -> ProductStock | None:
        """Materialized aggregate as last written by refresh()."""
        return ProductStock.objects.filter(product_id=product_id).first()
