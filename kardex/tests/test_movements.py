"""
Tests for stock movements: initial load, purchase, sale, adjustment,
transfer and returns.
"""

from decimal import Decimal

import pytest

from kardex import (
    InsufficientAvailable,
    InsufficientStock,
    InvalidAdjustment,
    InvalidEntry,
)
from kardex.models import (
    AdjustmentReason,
    EntryType,
    LedgerEntry,
    Location,
    ProductStock,
    ReferenceType,
)


pytestmark = pytest.mark.django_db


def cents(value):
    return Decimal(value).quantize(Decimal('0.01'))


class TestTireScenario:
    """Load, restock, sell, ship to FBA, then correct MAIN."""

    def test_full_walkthrough(self, ledger, product):
        ledger.initial_load(100, product, 'MAIN', unit_cost=58)
        ledger.purchase(20, product, 'MAIN', unit_cost=60)

        balance = ledger.current_balance(product, 'MAIN')
        assert balance.on_hand == 120
        assert cents(balance.average_cost) == Decimal('58.33')

        ledger.sale(30, product, 'MAIN')
        assert ledger.current_balance(product, 'MAIN').on_hand == 90

        ledger.transfer(40, product, 'MAIN', 'AMAZON_FBA')
        aggregate = ledger.aggregate(product)
        assert aggregate.inventory['MAIN'].stock == 50
        assert aggregate.inventory['AMAZON_FBA'].stock == 40
        assert cents(aggregate.inventory['AMAZON_FBA'].average_cost) == Decimal('58.33')
        assert aggregate.stock_quantity == 90

        with pytest.raises(InvalidAdjustment) as exc:
            ledger.adjust(-95, product, 'MAIN', reason=AdjustmentReason.LOST)
        assert 'current 50, adjustment -95' in exc.value.message
        assert ledger.current_balance(product, 'MAIN').on_hand == 50

        ledger.adjust(-50, product, 'MAIN', reason=AdjustmentReason.DAMAGED)
        assert ledger.current_balance(product, 'MAIN').on_hand == 0
        assert ledger.aggregate(product).stock_quantity == 40


class TestInitialLoad:

    def test_sets_opening_balance_and_cost(self, ledger, product):
        entry = ledger.initial_load(100, product, 'MAIN', unit_cost=58)

        assert entry.entry_type == EntryType.INITIAL_LOAD
        assert entry.quantity_change == 100
        assert entry.balance_after == 100
        assert entry.average_cost_after == Decimal('58')
        assert entry.sequence == 1

    def test_defaults_to_main_location(self, ledger, product):
        entry = ledger.initial_load(10, product)

        assert entry.location_id == 'MAIN'

    def test_refused_when_balance_exists(self, ledger, stocked):
        with pytest.raises(InvalidEntry):
            ledger.initial_load(5, stocked, 'MAIN', unit_cost=58)

        assert ledger.current_balance(stocked, 'MAIN').on_hand == 100

    def test_override_is_flagged_as_backfill(self, ledger, stocked):
        entry = ledger.initial_load(5, stocked, 'MAIN', unit_cost=58, override=True)

        assert entry.reference_type == ReferenceType.BACKFILL
        assert ledger.current_balance(stocked, 'MAIN').on_hand == 105

    def test_allowed_again_once_emptied(self, ledger, stocked):
        ledger.sale(100, stocked, 'MAIN')

        ledger.initial_load(7, stocked, 'MAIN', unit_cost=50)

        assert ledger.current_balance(stocked, 'MAIN').on_hand == 7

    @pytest.mark.parametrize('quantity', [0, -5, 2.5, True, '10'])
    def test_rejects_non_positive_integers(self, ledger, product, quantity):
        with pytest.raises(InvalidEntry):
            ledger.initial_load(quantity, product, 'MAIN', unit_cost=1)

        assert not LedgerEntry.objects.filter(product_id=product).exists()


class TestPurchase:

    def test_reweights_average_cost(self, ledger, stocked):
        entry = ledger.purchase(20, stocked, 'MAIN', unit_cost=60)

        assert entry.average_cost_before == Decimal('58')
        assert entry.average_cost_after == Decimal('58.3333')
        assert entry.reference_type == ReferenceType.PURCHASE_ORDER

    def test_requires_unit_cost(self, ledger, stocked):
        with pytest.raises(InvalidEntry):
            ledger.purchase(20, stocked, 'MAIN')

    def test_rejects_negative_cost(self, ledger, stocked):
        with pytest.raises(InvalidEntry):
            ledger.purchase(20, stocked, 'MAIN', unit_cost=-1)

    def test_into_empty_key_takes_purchase_cost(self, ledger, product):
        ledger.purchase(10, product, 'MELI_FULL', unit_cost=Decimal('12.5'))

        assert ledger.current_balance(product, 'MELI_FULL').average_cost == Decimal('12.5')

    def test_unknown_location_rejected(self, ledger, product):
        with pytest.raises(InvalidEntry) as exc:
            ledger.purchase(10, product, 'NOWHERE', unit_cost=1)

        assert exc.value.data['location_id'] == 'NOWHERE'

    def test_inactive_location_rejected(self, ledger, product, meli):
        meli.is_active = False
        meli.save()

        with pytest.raises(InvalidEntry):
            ledger.purchase(10, product, 'MELI_FULL', unit_cost=1)


class TestSale:

    def test_deducts_on_hand_at_average_cost(self, ledger, stocked):
        ledger.purchase(20, stocked, 'MAIN', unit_cost=60)

        entry = ledger.sale(30, stocked, 'MAIN', reference_id='ORD-1')

        assert entry.quantity_change == -30
        assert entry.balance_after == 90
        assert entry.unit_cost == Decimal('58.3333')
        assert entry.average_cost_after == entry.average_cost_before
        assert entry.reference_type == ReferenceType.ORDER
        assert entry.reference_id == 'ORD-1'

    def test_insufficient_stock(self, ledger, stocked):
        with pytest.raises(InsufficientStock) as exc:
            ledger.sale(101, stocked, 'MAIN')

        assert exc.value.available == 100
        assert exc.value.requested == 101
        assert 'Insufficient stock' in exc.value.message
        assert ledger.current_balance(stocked, 'MAIN').on_hand == 100

    def test_sale_of_everything(self, ledger, stocked):
        ledger.sale(100, stocked, 'MAIN')

        assert ledger.current_balance(stocked, 'MAIN').on_hand == 0

    def test_reserved_units_are_protected(self, ledger, stocked):
        ledger.reserve(95, stocked, 'MAIN')

        with pytest.raises(InsufficientAvailable) as exc:
            ledger.sale(10, stocked, 'MAIN')

        assert exc.value.available == 5

    def test_backorder_lets_available_go_negative(self, ledger, stocked):
        ledger.reserve(95, stocked, 'MAIN')

        ledger.sale(10, stocked, 'MAIN', allow_backorder=True)

        aggregate = ledger.aggregate(stocked)
        assert aggregate.stock_quantity == 90
        assert aggregate.available_stock == -5
        assert aggregate.backordered
        assert ProductStock.objects.get(product_id=stocked).backordered

    def test_backorder_never_overdraws_on_hand(self, ledger, stocked):
        with pytest.raises(InsufficientStock):
            ledger.sale(101, stocked, 'MAIN', allow_backorder=True)

    def test_metadata_is_kept(self, ledger, stocked):
        entry = ledger.sale(1, stocked, 'MAIN', channel='amazon')

        assert entry.metadata == {'channel': 'amazon'}


class TestAdjustment:

    def test_requires_reason(self, ledger, stocked):
        with pytest.raises(InvalidEntry):
            ledger.adjust(-5, stocked, 'MAIN')

    def test_rejects_zero(self, ledger, stocked):
        with pytest.raises(InvalidEntry):
            ledger.adjust(0, stocked, 'MAIN', reason=AdjustmentReason.FOUND)

    def test_negative_adjustment(self, ledger, stocked):
        entry = ledger.adjust(-5, stocked, 'MAIN', reason=AdjustmentReason.DAMAGED, notes='dropped')

        assert entry.balance_after == 95
        assert entry.notes == 'DAMAGED: dropped'
        assert entry.metadata['reason'] == AdjustmentReason.DAMAGED

    def test_positive_adjustment_keeps_average(self, ledger, stocked):
        entry = ledger.adjust(10, stocked, 'MAIN', reason=AdjustmentReason.FOUND)

        assert entry.unit_cost == Decimal('58')
        assert entry.average_cost_after == Decimal('58')
        assert entry.balance_after == 110

    def test_positive_adjustment_with_cost_reweights(self, ledger, stocked):
        entry = ledger.adjust(
            100, stocked, 'MAIN', reason=AdjustmentReason.FOUND, unit_cost=62,
        )

        assert entry.average_cost_after == Decimal('60')

    def test_to_exactly_zero(self, ledger, stocked):
        entry = ledger.adjust(-100, stocked, 'MAIN', reason=AdjustmentReason.LOST)

        assert entry.balance_after == 0

    def test_below_zero_is_refused(self, ledger, stocked):
        with pytest.raises(InvalidAdjustment) as exc:
            ledger.adjust(-101, stocked, 'MAIN', reason=AdjustmentReason.LOST)

        assert exc.value.message == (
            'adjustment would result in negative stock: current 100, adjustment -101'
        )

    def test_reset_cost_needs_unit_cost(self, ledger, stocked):
        with pytest.raises(InvalidEntry):
            ledger.adjust(5, stocked, 'MAIN', reason=AdjustmentReason.RECOUNT, reset_cost=True)


class TestRecount:

    def test_computes_delta(self, ledger, stocked):
        entry = ledger.recount(93, stocked, 'MAIN')

        assert entry.entry_type == EntryType.ADJUSTMENT
        assert entry.quantity_change == -7
        assert entry.metadata['reason'] == AdjustmentReason.RECOUNT
        assert ledger.current_balance(stocked, 'MAIN').on_hand == 93

    def test_matching_count_writes_nothing(self, ledger, stocked):
        assert ledger.recount(100, stocked, 'MAIN') is None
        assert LedgerEntry.objects.filter(product_id=stocked).count() == 1

    def test_with_cost_resets_average(self, ledger, stocked):
        entry = ledger.recount(110, stocked, 'MAIN', unit_cost=Decimal('61.5'))

        assert entry.resets_cost
        assert ledger.current_balance(stocked, 'MAIN').average_cost == Decimal('61.5')

    def test_cost_reset_on_unchanged_count_is_noop(self, ledger, stocked):
        assert ledger.recount(100, stocked, 'MAIN', unit_cost=70) is None
        assert ledger.current_balance(stocked, 'MAIN').average_cost == Decimal('58')

    def test_rejects_negative_count(self, ledger, stocked):
        with pytest.raises(InvalidEntry):
            ledger.recount(-1, stocked, 'MAIN')


class TestTransfer:

    def test_writes_balanced_pair(self, ledger, stocked):
        out_entry, in_entry = ledger.transfer(40, stocked, 'MAIN', 'AMAZON_FBA')

        assert out_entry.entry_type == EntryType.TRANSFER_OUT
        assert in_entry.entry_type == EntryType.TRANSFER_IN
        assert out_entry.quantity_change == -40
        assert in_entry.quantity_change == 40
        assert out_entry.reference_id == in_entry.reference_id
        assert out_entry.reference_id.startswith('TRF-')
        assert out_entry.timestamp == in_entry.timestamp
        assert out_entry.metadata['to_location'] == 'AMAZON_FBA'
        assert in_entry.metadata['from_location'] == 'MAIN'

    def test_carries_source_average_cost(self, ledger, stocked):
        ledger.purchase(20, stocked, 'MAIN', unit_cost=60)

        _, in_entry = ledger.transfer(40, stocked, 'MAIN', 'AMAZON_FBA')

        assert in_entry.unit_cost == Decimal('58.3333')
        assert ledger.current_balance(stocked, 'AMAZON_FBA').average_cost == Decimal('58.3333')
        assert ledger.current_balance(stocked, 'MAIN').average_cost == Decimal('58.3333')

    def test_blends_into_destination_average(self, ledger, stocked):
        ledger.initial_load(10, stocked, 'AMAZON_FBA', unit_cost=70)

        ledger.transfer(10, stocked, 'MAIN', 'AMAZON_FBA')

        assert ledger.current_balance(stocked, 'AMAZON_FBA').average_cost == Decimal('64')

    def test_conserves_total(self, ledger, stocked):
        before = ledger.aggregate(stocked).stock_quantity

        ledger.transfer(40, stocked, 'MAIN', 'AMAZON_FBA')
        ledger.transfer(15, stocked, 'AMAZON_FBA', 'MELI_FULL')

        aggregate = ledger.aggregate(stocked)
        assert aggregate.stock_quantity == before
        assert {code: loc.stock for code, loc in aggregate.inventory.items()} == {
            'MAIN': 60, 'AMAZON_FBA': 25, 'MELI_FULL': 15,
        }

    def test_custom_transfer_id(self, ledger, stocked):
        out_entry, in_entry = ledger.transfer(1, stocked, 'MAIN', 'MELI_FULL', transfer_id='SHIP-77')

        assert out_entry.reference_id == in_entry.reference_id == 'SHIP-77'

    def test_insufficient_source_writes_nothing(self, ledger, stocked):
        with pytest.raises(InsufficientStock):
            ledger.transfer(101, stocked, 'MAIN', 'AMAZON_FBA')

        assert not LedgerEntry.objects.filter(
            product_id=stocked, entry_type__in=[EntryType.TRANSFER_OUT, EntryType.TRANSFER_IN]
        ).exists()

    def test_same_location_rejected(self, ledger, stocked):
        with pytest.raises(InvalidEntry):
            ledger.transfer(1, stocked, 'MAIN', 'MAIN')

    def test_failed_destination_rolls_back_source(self, ledger, stocked, fba):
        fba.is_active = False
        fba.save()

        with pytest.raises(InvalidEntry):
            ledger.transfer(40, stocked, 'MAIN', 'AMAZON_FBA')

        assert not LedgerEntry.objects.filter(
            product_id=stocked, entry_type=EntryType.TRANSFER_OUT
        ).exists()
        assert ledger.current_balance(stocked, 'MAIN').on_hand == 100

    def test_reserved_units_can_leave_as_backorder(self, ledger, stocked):
        ledger.reserve(70, stocked, 'MAIN')

        out_entry, in_entry = ledger.transfer(40, stocked, 'MAIN', 'AMAZON_FBA')

        assert out_entry.balance_after == 60
        assert in_entry.balance_after == 40
        assert ledger.available(stocked, 'MAIN') == -10

        aggregate = ledger.aggregate(stocked)
        assert aggregate.stock_quantity == 100
        assert aggregate.backordered
        assert ProductStock.objects.get(product_id=stocked).backordered

    def test_transfer_still_bounded_by_on_hand(self, ledger, stocked):
        ledger.reserve(70, stocked, 'MAIN')

        with pytest.raises(InsufficientStock):
            ledger.transfer(101, stocked, 'MAIN', 'AMAZON_FBA')

        assert ledger.current_balance(stocked, 'MAIN').on_hand == 100


class TestReturns:

    def test_return_in_at_current_average(self, ledger, stocked):
        entry = ledger.return_in(3, stocked, 'MAIN', reference_id='RMA-1')

        assert entry.entry_type == EntryType.RETURN_IN
        assert entry.unit_cost == Decimal('58')
        assert entry.reference_type == ReferenceType.RETURN
        assert entry.balance_after == 103

    def test_return_in_with_cost(self, ledger, stocked):
        ledger.return_in(100, stocked, 'MAIN', unit_cost=0)

        assert ledger.current_balance(stocked, 'MAIN').average_cost == Decimal('29')

    def test_return_out_to_supplier(self, ledger, stocked):
        entry = ledger.return_out(10, stocked, 'MAIN')

        assert entry.entry_type == EntryType.RETURN_OUT
        assert entry.quantity_change == -10
        assert entry.balance_after == 90

    def test_return_out_insufficient(self, ledger, stocked):
        with pytest.raises(InsufficientStock):
            ledger.return_out(101, stocked, 'MAIN')


class TestBulkInitialLoad:

    def test_loads_rows_and_collects_failures(self, ledger, stocked):
        product = f'{stocked}-B'
        rows = [
            {'quantity': 10, 'product_id': product, 'location_id': 'MAIN', 'unit_cost': 5},
            {'quantity': 10, 'product_id': stocked, 'location_id': 'MAIN', 'unit_cost': 5},
            {'quantity': 4, 'product_id': product, 'location_id': 'AMAZON_FBA', 'unit_cost': 5},
        ]

        result = ledger.bulk_initial_load(rows, batch_size=2)

        assert result.loaded == 2
        assert len(result.failed) == 1
        index, error = result.failed[0]
        assert index == 1
        assert error['code'] == 'INVALID_ENTRY'
        assert ledger.aggregate(product).stock_quantity == 14
        assert ledger.current_balance(stocked, 'MAIN').on_hand == 100

    def test_location_rows_are_independent(self, ledger, product):
        Location.objects.create(code='CLOSED', name='Closed', is_active=False)
        rows = [
            {'quantity': 1, 'product_id': product, 'location_id': 'CLOSED'},
            {'quantity': 2, 'product_id': product, 'location_id': 'MAIN'},
        ]

        result = ledger.bulk_initial_load(rows)

        assert result.loaded == 1
        assert result.failed[0][0] == 0
