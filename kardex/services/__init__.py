"""
Kardex services — one class per component, wired by constructor injection.

    from kardex.services import (
        LedgerStore, BalanceReconstructor, StockAggregator,
        StockMovements, ReservationLedger, LedgerAuditor,
    )
"""

from kardex.services.aggregator import LocationStock, ProductStockAggregate, StockAggregator
from kardex.services.audit import Finding, LedgerAuditor
from kardex.services.movements import BulkResult, StockMovements
from kardex.services.reconstructor import Balance, BalanceReconstructor
from kardex.services.reservations import ReservationLedger
from kardex.services.store import LedgerStore

__all__ = [
    'LedgerStore',
    'Balance',
    'BalanceReconstructor',
    'LocationStock',
    'ProductStockAggregate',
    'StockAggregator',
    'BulkResult',
    'StockMovements',
    'ReservationLedger',
    'Finding',
    'LedgerAuditor',
]
