"""
Ledger store — append-only persistence of LedgerEntry rows.

append() is the only write. It validates the entry, assigns the key's next
insertion sequence and inserts the row. Nothing here updates or deletes.
"""

import logging

from django.db import transaction
from django.db.models import Max

from kardex.exceptions import InvalidEntry
from kardex.models.entry import LedgerEntry
from kardex.models.enums import INBOUND_TYPES, OUTBOUND_TYPES, EntryType
from kardex.models.location import Location
from kardex.services.locking import lock_key

logger = logging.getLogger('kardex')

REQUIRED_FIELDS = ('product_id', 'location_id', 'entry_type', 'actor', 'timestamp')


class LedgerStore:
    """Append and ordered reads over the kardex."""

    def validate(self, entry: LedgerEntry) -> None:
        """
        Reject malformed entries before anything is written.

        Raises:
            InvalidEntry: Missing field, zero change, sign not matching the
                type, negative cost or unknown location
        """
        missing = [name for name in REQUIRED_FIELDS if not getattr(entry, name, None)]
        if entry.balance_after is None:
            missing.append('balance_after')
        if missing:
            raise InvalidEntry(
                message=f"Missing required fields: {', '.join(missing)}",
                missing=missing,
            )

        if not entry.quantity_change:
            raise InvalidEntry(
                message="quantity_change must not be zero",
                product_id=entry.product_id,
                location_id=entry.location_id,
            )

        if entry.entry_type not in EntryType.values:
            raise InvalidEntry(
                message=f"Unknown entry type: {entry.entry_type}",
                entry_type=entry.entry_type,
            )

        if entry.entry_type in INBOUND_TYPES and entry.quantity_change < 0:
            raise InvalidEntry(
                message=f"{entry.entry_type} must be inbound (positive quantity change)",
                quantity_change=entry.quantity_change,
            )
        if entry.entry_type in OUTBOUND_TYPES and entry.quantity_change > 0:
            raise InvalidEntry(
                message=f"{entry.entry_type} must be outbound (negative quantity change)",
                quantity_change=entry.quantity_change,
            )

        if entry.unit_cost is None or entry.unit_cost < 0:
            raise InvalidEntry(
                message="unit_cost must be zero or positive",
                unit_cost=entry.unit_cost,
            )

        if not Location.objects.filter(code=entry.location_id, is_active=True).exists():
            raise InvalidEntry(
                message=f"Unknown or inactive location: {entry.location_id}",
                location_id=entry.location_id,
            )

    def append(self, entry: LedgerEntry):
        """
        Validate and insert an entry. Returns the new entry id.

        Concurrency:
            - Runs under transaction.atomic()
            - Locks the key's balance row to take the next sequence
        """
        self.validate(entry)

        with transaction.atomic():
            balance = lock_key(entry.product_id, entry.location_id)
            # The cached counter is rebuilt from the ledger if caches were wiped
            written = LedgerEntry.objects.for_key(
                entry.product_id, entry.location_id
            ).aggregate(m=Max('sequence'))['m'] or 0
            balance.last_sequence = max(balance.last_sequence, written) + 1
            balance.save(update_fields=['last_sequence', 'updated_at'])

            entry.sequence = balance.last_sequence
            entry.save()

        logger.debug(
            "kardex.entry.appended",
            extra={
                "entry_id": str(entry.pk),
                "product": entry.product_id,
                "location": entry.location_id,
                "type": entry.entry_type,
                "qty": entry.quantity_change,
                "sequence": entry.sequence,
            },
        )
        return entry.pk

    # ══════════════════════════════════════════════════════════════
    # READS
    # ══════════════════════════════════════════════════════════════

    def list_by_product_location(self, product_id: str, location_id: str,
                                 until=None) -> list[LedgerEntry]:
        """Entries of one key in (timestamp, sequence) order."""
        qs = LedgerEntry.objects.for_key(product_id, location_id)
        if until is not None:
            qs = qs.until(until)
        return list(qs.in_order())

    def list_by_product(self, product_id: str) -> list[LedgerEntry]:
        """Entries of a product across every location, in order."""
        return list(LedgerEntry.objects.for_product(product_id).in_order())

    def locations_for(self, product_id: str) -> list[str]:
        """Locations with at least one entry for the product."""
        return sorted(set(
            LedgerEntry.objects.for_product(product_id)
            .values_list('location_id', flat=True)
        ))

    def product_ids(self) -> list[str]:
        return sorted(set(LedgerEntry.objects.values_list('product_id', flat=True)))

    def history(self, product_id: str, location_id: str | None = None,
                limit: int = 50) -> list[LedgerEntry]:
        """Newest-first history for display."""
        qs = LedgerEntry.objects.for_product(product_id)
        if location_id is not None:
            qs = qs.filter(location_id=location_id)
        return list(qs.order_by('-timestamp', '-sequence')[:limit])

    def by_reference(self, reference_type: str, reference_id: str) -> list[LedgerEntry]:
        return list(
            LedgerEntry.objects.filter(
                reference_type=reference_type, reference_id=reference_id
            ).in_order()
        )
