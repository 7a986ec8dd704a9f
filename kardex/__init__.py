"""
Kardex — perpetual inventory ledger for multi-location stock.

Usage:
    from kardex import kardex, InsufficientStock

    kardex.purchase(20, 'TIRE-1', 'MAIN', unit_cost=60)
    kardex.sale(3, 'TIRE-1', 'MAIN', reference_id='ORD-1')
    kardex.aggregate('TIRE-1').available_stock
"""


def __getattr__(name):
    """Lazy import to avoid circular imports during app loading."""
    if name == 'kardex':
        from kardex.service import Kardex
        return Kardex()
    elif name == 'Kardex':
        from kardex.service import Kardex
        return Kardex
    elif name in _EXCEPTIONS:
        from kardex import exceptions
        return getattr(exceptions, name)
    elif name in _MODELS:
        from kardex import models
        return getattr(models, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


_EXCEPTIONS = {
    'KardexError',
    'InvalidEntry',
    'InsufficientStock',
    'InsufficientAvailable',
    'InvalidAdjustment',
    'Contention',
    'LedgerInconsistency',
    'InvalidReservation',
}

_MODELS = {
    'Location',
    'LedgerEntry',
    'LocationBalance',
    'ProductStock',
    'Reservation',
    'EntryType',
    'ReferenceType',
    'AdjustmentReason',
    'ReservationStatus',
}

__all__ = ['kardex', 'Kardex', *sorted(_EXCEPTIONS), *sorted(_MODELS)]
