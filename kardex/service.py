"""
Kardex Service — The single public interface for all inventory operations.

Usage:
    from kardex import kardex, InsufficientStock

    kardex.initial_load(100, 'TIRE-1', 'MAIN', unit_cost=58)
    kardex.transfer(40, 'TIRE-1', 'MAIN', 'AMAZON_FBA')
    reservation_id = kardex.reserve(2, 'TIRE-1', 'MAIN', reference_id='ORD-9')
    kardex.commit(reservation_id)
    kardex.aggregate('TIRE-1').stock_quantity
"""

from decimal import Decimal

from kardex.models.entry import LedgerEntry
from kardex.models.product_stock import ProductStock
from kardex.models.reservation import Reservation
from kardex.services.aggregator import ProductStockAggregate, StockAggregator
from kardex.services.audit import Finding, LedgerAuditor
from kardex.services.movements import BulkResult, StockMovements
from kardex.services.reconstructor import Balance, BalanceReconstructor
from kardex.services.reservations import ReservationLedger
from kardex.services.store import LedgerStore


class Kardex:
    """
    Facade over the ledger components.

    Parameter convention: (quantity, product_id, location_id, ...)
    Follows natural language: "Sell 3 TIRE-1 from MAIN"

    Collaborators are injected; any that are omitted are built from the
    ones given, so a Kardex(store=custom_store) shares that store with
    every component.
    """

    def __init__(self, store: LedgerStore | None = None,
                 reconstructor: BalanceReconstructor | None = None,
                 aggregator: StockAggregator | None = None,
                 movements: StockMovements | None = None,
                 reservations: ReservationLedger | None = None,
                 auditor: LedgerAuditor | None = None):
        self.store = store or LedgerStore()
        self.reconstructor = reconstructor or BalanceReconstructor(self.store)
        self.aggregator = aggregator or StockAggregator(self.reconstructor)
        self.movements = movements or StockMovements(self.store, self.reconstructor, self.aggregator)
        self.reservations = reservations or ReservationLedger(self.movements)
        self.auditor = auditor or LedgerAuditor(self.aggregator)

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    def current_balance(self, product_id: str, location_id: str) -> Balance:
        return self.reconstructor.current_balance(product_id, location_id)

    def balance_as_of(self, product_id: str, location_id: str, timestamp) -> Balance:
        return self.reconstructor.balance_as_of(product_id, location_id, timestamp)

    def aggregate(self, product_id: str) -> ProductStockAggregate:
        """Product rollup computed from the ledger now."""
        return self.aggregator.aggregate(product_id)

    def product_stock(self, product_id: str) -> ProductStock | None:
        """Product rollup as last materialized (fast read for the catalog)."""
        return self.aggregator.cached(product_id)

    def available(self, product_id: str, location_id: str | None = None) -> int:
        """Available units at one location, or summed over all of them."""
        aggregate = self.aggregator.aggregate(product_id)
        if location_id is None:
            return aggregate.available_stock
        stock = aggregate.inventory.get(location_id)
        return stock.available if stock else 0

    def reserved(self, product_id: str, location_id: str | None = None) -> int:
        qs = Reservation.objects.filter(product_id=product_id)
        if location_id is not None:
            qs = qs.filter(location_id=location_id)
        return qs.active().total()

    def history(self, product_id: str, location_id: str | None = None,
                limit: int = 50) -> list[LedgerEntry]:
        return self.store.history(product_id, location_id, limit)

    def valuation(self, product_id: str) -> Decimal:
        """on_hand x average cost, summed over locations."""
        return self.aggregator.aggregate(product_id).total_value

    # ══════════════════════════════════════════════════════════════
    # MOVEMENTS
    # ══════════════════════════════════════════════════════════════

    def initial_load(self, quantity: int, product_id: str, location_id: str | None = None,
                     unit_cost=Decimal('0'), **kwargs) -> LedgerEntry:
        return self.movements.initial_load(quantity, product_id, location_id, unit_cost, **kwargs)

    def purchase(self, quantity: int, product_id: str, location_id: str | None = None,
                 unit_cost=None, **kwargs) -> LedgerEntry:
        return self.movements.purchase(quantity, product_id, location_id, unit_cost, **kwargs)

    def sale(self, quantity: int, product_id: str, location_id: str | None = None,
             **kwargs) -> LedgerEntry:
        return self.movements.sale(quantity, product_id, location_id, **kwargs)

    def adjust(self, quantity_change: int, product_id: str, location_id: str | None = None,
               reason: str = '', **kwargs) -> LedgerEntry:
        return self.movements.adjust(quantity_change, product_id, location_id, reason, **kwargs)

    def recount(self, counted_quantity: int, product_id: str, location_id: str | None = None,
                **kwargs) -> LedgerEntry | None:
        return self.movements.recount(counted_quantity, product_id, location_id, **kwargs)

    def transfer(self, quantity: int, product_id: str, from_location: str,
                 to_location: str, **kwargs) -> tuple[LedgerEntry, LedgerEntry]:
        return self.movements.transfer(quantity, product_id, from_location, to_location, **kwargs)

    def return_in(self, quantity: int, product_id: str, location_id: str | None = None,
                  **kwargs) -> LedgerEntry:
        return self.movements.return_in(quantity, product_id, location_id, **kwargs)

    def return_out(self, quantity: int, product_id: str, location_id: str | None = None,
                   **kwargs) -> LedgerEntry:
        return self.movements.return_out(quantity, product_id, location_id, **kwargs)

    def bulk_initial_load(self, rows, batch_size: int | None = None) -> BulkResult:
        return self.movements.initial_load_many(rows, batch_size)

    # ══════════════════════════════════════════════════════════════
    # RESERVATIONS
    # ══════════════════════════════════════════════════════════════

    def reserve(self, quantity: int, product_id: str, location_id: str | None = None,
                **kwargs) -> str:
        return self.reservations.reserve(quantity, product_id, location_id, **kwargs)

    def release(self, reservation_id: str, reason: str = 'released') -> Reservation:
        return self.reservations.release(reservation_id, reason)

    def commit(self, reservation_id: str, **kwargs) -> LedgerEntry:
        return self.reservations.commit(reservation_id, **kwargs)

    def release_expired(self) -> int:
        return self.reservations.release_expired()

    # ══════════════════════════════════════════════════════════════
    # AUDIT
    # ══════════════════════════════════════════════════════════════

    def audit(self, product_ids=None) -> list[Finding]:
        return self.auditor.audit(product_ids)

    def verify(self, product_ids=None) -> None:
        self.auditor.verify(product_ids)

    def rebuild(self, product_ids=None) -> int:
        return self.auditor.rebuild(product_ids)
