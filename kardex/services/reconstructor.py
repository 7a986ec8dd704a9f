"""
Balance reconstructor — on-hand and average cost by folding the ledger.

Stored snapshots on entries are never trusted. Every balance is the fold of
quantity_change/unit_cost over the key's entries in (timestamp, sequence)
order, so an entry appended with an earlier timestamp lands in its correct
position for every query that spans it.
"""

import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from kardex import costing
from kardex.exceptions import LedgerInconsistency
from kardex.models.entry import LedgerEntry
from kardex.services.store import LedgerStore

logger = logging.getLogger('kardex')


@dataclass(frozen=True)
class Balance:
    """Fold result for one (product, location)."""

    product_id: str
    location_id: str
    on_hand: int = 0
    average_cost: Decimal = costing.ZERO
    entry_count: int = 0
    last_timestamp: datetime | None = None

    @property
    def total_value(self) -> Decimal:
        return self.on_hand * self.average_cost


@dataclass(frozen=True)
class Projection:
    """Where a not-yet-written entry would land in its key's history."""

    before: costing.CostState
    after: costing.CostState
    final: costing.CostState
    lowest_on_hand: int


def order_key(entry: LedgerEntry):
    """(timestamp, sequence); an unsaved entry sorts last among equals."""
    sequence = entry.sequence if entry.sequence is not None else sys.maxsize
    return (entry.timestamp, sequence)


class BalanceReconstructor:
    """Folds ledger entries into balances."""

    def __init__(self, store: LedgerStore | None = None):
        self.store = store or LedgerStore()

    def walk(self, entries):
        """Yield (entry, state_before, state_after) in ledger order."""
        state = costing.EMPTY
        for entry in sorted(entries, key=order_key):
            after = costing.apply(
                state, entry.quantity_change, entry.unit_cost, entry.resets_cost
            )
            yield entry, state, after
            state = after

    def fold(self, entries, product_id: str, location_id: str) -> Balance:
        """
        Fold entries of one key into a Balance.

        Raises:
            LedgerInconsistency: If on_hand drops below zero at any entry
        """
        state = costing.EMPTY
        count = 0
        last_timestamp = None

        for entry, _, after in self.walk(entries):
            if after.on_hand < 0:
                logger.error(
                    "kardex.inconsistency.negative_fold",
                    extra={
                        "product": product_id,
                        "location": location_id,
                        "entry_id": str(entry.pk),
                        "on_hand": after.on_hand,
                    },
                )
                raise LedgerInconsistency(
                    message=(
                        f"Ledger for {product_id}@{location_id} folds to "
                        f"{after.on_hand} at entry {entry.pk}"
                    ),
                    product_id=product_id,
                    location_id=location_id,
                    entry_id=str(entry.pk),
                    on_hand=after.on_hand,
                )
            state = after
            count += 1
            last_timestamp = entry.timestamp

        return Balance(
            product_id=product_id,
            location_id=location_id,
            on_hand=state.on_hand,
            average_cost=state.average_cost,
            entry_count=count,
            last_timestamp=last_timestamp,
        )

    def current_balance(self, product_id: str, location_id: str) -> Balance:
        """On-hand and average cost after every entry of the key."""
        entries = self.store.list_by_product_location(product_id, location_id)
        return self.fold(entries, product_id, location_id)

    def balance_as_of(self, product_id: str, location_id: str, timestamp) -> Balance:
        """Same fold, restricted to entries with timestamp <= ``timestamp``."""
        entries = self.store.list_by_product_location(product_id, location_id, until=timestamp)
        return self.fold(entries, product_id, location_id)

    def state_before(self, entries, draft: LedgerEntry) -> costing.CostState:
        """State of the key right before ``draft``'s position."""
        position = order_key(draft)
        state = costing.EMPTY
        for entry, _, after in self.walk(entries):
            if order_key(entry) >= position:
                break
            state = after
        return state

    def project(self, entries, draft: LedgerEntry) -> Projection:
        """
        Replay a key's history with ``draft`` inserted at its position.

        Returns the state right before and after the draft, the final state
        and the lowest on_hand reached anywhere in the replay. Callers use
        ``lowest_on_hand`` to refuse appends (including backdated ones) that
        would make any point of the history negative.
        """
        before = after = None
        lowest = 0
        final = costing.EMPTY

        for entry, state_before, state_after in self.walk([*entries, draft]):
            if entry is draft:
                before, after = state_before, state_after
            lowest = min(lowest, state_after.on_hand)
            final = state_after

        return Projection(before=before, after=after, final=final, lowest_on_hand=lowest)
