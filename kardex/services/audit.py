"""
Ledger audit — detect invariant violations, never repair them.

Checks:
- Every key folds without going below zero
- Every transfer id resolves to exactly one OUT and one IN of equal size
- Cached LocationBalance / ProductStock match a replay of the ledger

Findings are logged at ERROR and raised as LedgerInconsistency by verify().
A human decides on the corrective ADJUSTMENT.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass

from django.db import transaction

from kardex.exceptions import LedgerInconsistency
from kardex.models.balance import LocationBalance
from kardex.models.entry import LedgerEntry
from kardex.models.enums import EntryType
from kardex.services.aggregator import LocationStock, StockAggregator
from kardex.services.locking import lock_keys


@dataclass(frozen=True)
class Finding:
    """One detected violation."""

    kind: str
    product_id: str
    detail: str

    def __str__(self) -> str:
        return f"[{self.kind}] {self.product_id}: {self.detail}"


logger = logging.getLogger('kardex')


class LedgerAuditor:
    """Replays the ledger and compares it with invariants and caches."""

    def __init__(self, aggregator: StockAggregator | None = None):
        self.aggregator = aggregator or StockAggregator()
        self.reconstructor = self.aggregator.reconstructor
        self.store = self.aggregator.store

    def check_transfers(self, product_id: str | None = None) -> list[Finding]:
        """Each transfer id must have one OUT and one IN with equal quantity."""
        qs = LedgerEntry.objects.transfers()
        if product_id is not None:
            qs = qs.for_product(product_id)

        pairs = defaultdict(list)
        for entry in qs.in_order():
            pairs[entry.reference_id].append(entry)

        findings = []
        for transfer_id, entries in sorted(pairs.items()):
            outs = [e for e in entries if e.entry_type == EntryType.TRANSFER_OUT]
            ins = [e for e in entries if e.entry_type == EntryType.TRANSFER_IN]
            product = entries[0].product_id

            if len(outs) != 1 or len(ins) != 1 or len(entries) != 2:
                findings.append(Finding(
                    'orphaned_transfer', product,
                    f"transfer {transfer_id} has {len(outs)} OUT and {len(ins)} IN entries",
                ))
                continue

            out_entry, in_entry = outs[0], ins[0]
            if out_entry.quantity_change != -in_entry.quantity_change:
                findings.append(Finding(
                    'unbalanced_transfer', product,
                    f"transfer {transfer_id} moves {out_entry.quantity_change} out "
                    f"and {in_entry.quantity_change} in",
                ))
            if out_entry.product_id != in_entry.product_id:
                findings.append(Finding(
                    'unbalanced_transfer', product,
                    f"transfer {transfer_id} spans products "
                    f"{out_entry.product_id} and {in_entry.product_id}",
                ))
        return findings

    def check_product(self, product_id: str) -> list[Finding]:
        """Replay one product and compare with its caches."""
        try:
            aggregate = self.aggregator.aggregate(product_id)
        except LedgerInconsistency as exc:
            return [Finding('negative_fold', product_id, exc.message)]

        findings = []
        cached_balances = {
            b.location_id: b for b in LocationBalance.objects.filter(product_id=product_id)
        }
        for location_id in sorted(set(cached_balances) | set(aggregate.inventory)):
            cached = cached_balances.get(location_id)
            # A key with no ledger history replays to an empty balance
            stock = aggregate.inventory.get(location_id) or LocationStock(location_id, 0, 0)
            if cached is None:
                findings.append(Finding(
                    'missing_cache', product_id, f"no cached balance for {location_id}",
                ))
                continue
            if cached.on_hand != stock.stock or cached.average_cost != stock.average_cost:
                findings.append(Finding(
                    'stale_balance', product_id,
                    f"{location_id} cached {cached.on_hand} @ {cached.average_cost}, "
                    f"replay {stock.stock} @ {stock.average_cost}",
                ))

        product_stock = self.aggregator.cached(product_id)
        if product_stock is None:
            if aggregate.inventory:
                findings.append(Finding('missing_cache', product_id, "no cached product stock"))
        else:
            if product_stock.stock_quantity != aggregate.stock_quantity:
                findings.append(Finding(
                    'stale_aggregate', product_id,
                    f"cached stock_quantity {product_stock.stock_quantity}, "
                    f"replay {aggregate.stock_quantity}",
                ))
            cached_stock = {
                code: data.get('stock') for code, data in product_stock.inventory.items()
            }
            replay_stock = {code: loc.stock for code, loc in aggregate.inventory.items()}
            if cached_stock != replay_stock:
                findings.append(Finding(
                    'stale_aggregate', product_id,
                    f"cached inventory {cached_stock}, replay {replay_stock}",
                ))
        return findings

    def audit(self, product_ids=None) -> list[Finding]:
        """Run every check for the given products (default: all in the ledger)."""
        if product_ids is None:
            product_ids = self.store.product_ids()

        findings = []
        for product_id in product_ids:
            findings.extend(self.check_product(product_id))
            findings.extend(self.check_transfers(product_id))

        for finding in findings:
            logger.error(
                "kardex.inconsistency",
                extra={
                    "kind": finding.kind,
                    "product": finding.product_id,
                    "detail": finding.detail,
                },
            )
        return findings

    def verify(self, product_ids=None) -> None:
        """
        Raises:
            LedgerInconsistency: Listing every finding
        """
        findings = self.audit(product_ids)
        if findings:
            raise LedgerInconsistency(
                message=f"{len(findings)} ledger inconsistencies found",
                findings=[str(f) for f in findings],
            )

    def rebuild(self, product_ids=None) -> int:
        """
        Regenerate caches from the ledger alone.

        Each product is rebuilt in its own transaction while holding the
        locks of its keys. Returns the number of products rebuilt.
        """
        if product_ids is None:
            product_ids = self.store.product_ids()

        count = 0
        for product_id in product_ids:
            with transaction.atomic():
                location_ids = set(self.store.locations_for(product_id)) | set(
                    LocationBalance.objects.filter(product_id=product_id)
                    .values_list('location_id', flat=True)
                )
                lock_keys((product_id, loc) for loc in location_ids)
                self.aggregator.refresh(product_id, location_ids)
            count += 1

        logger.info("kardex.rebuild", extra={"products": count})
        return count
