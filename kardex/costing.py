"""
Weighted-average costing — isolated, testable, reusable.

The one place where a movement changes on-hand quantity and average unit
cost. Every inbound movement (any positive quantity change) is costed with
the same formula:

    average_after = (on_hand_before * average_before + qty * unit_cost)
                    / on_hand_after

Outbound movements carry the average forward unchanged. A recount reset
replaces the average with the supplied unit cost.

Examples:
    >>> s = apply(EMPTY, 100, Decimal('58'))
    >>> s = apply(s, 20, Decimal('60'))
    >>> s.on_hand, s.average_cost
    (120, Decimal('58.3333'))
    >>> apply(s, -30, s.average_cost).average_cost
    Decimal('58.3333')
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from kardex.conf import kardex_settings

ZERO = Decimal('0')


@dataclass(frozen=True)
class CostState:
    """On-hand quantity and average cost at a point in a key's history."""

    on_hand: int = 0
    average_cost: Decimal = ZERO

    @property
    def total_value(self) -> Decimal:
        return self.on_hand * self.average_cost


EMPTY = CostState()


def quantize_cost(value, places: int | None = None) -> Decimal:
    """Round a cost to the configured number of decimal places (half-up)."""
    if places is None:
        places = kardex_settings.COST_DECIMAL_PLACES
    exponent = Decimal(1).scaleb(-places)
    return Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def weighted_average(on_hand: int, average_cost: Decimal,
                     quantity: int, unit_cost: Decimal,
                     places: int | None = None) -> Decimal:
    """Average cost after receiving ``quantity`` units at ``unit_cost``."""
    new_on_hand = on_hand + quantity
    if new_on_hand <= 0:
        return quantize_cost(average_cost, places)
    total = Decimal(on_hand) * Decimal(average_cost) + Decimal(quantity) * Decimal(unit_cost)
    return quantize_cost(total / new_on_hand, places)


def apply(state: CostState, quantity_change: int, unit_cost,
          resets_cost: bool = False, places: int | None = None) -> CostState:
    """Apply one movement to a cost state. Does not validate the result."""
    on_hand = state.on_hand + quantity_change

    if resets_cost:
        average = quantize_cost(unit_cost, places)
    elif quantity_change > 0:
        average = weighted_average(
            state.on_hand, state.average_cost, quantity_change, unit_cost, places
        )
    else:
        average = state.average_cost

    return CostState(on_hand=on_hand, average_cost=average)
