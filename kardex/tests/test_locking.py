"""
Tests for per-key locking and Contention.
"""

from unittest import mock

import pytest
from django.db import OperationalError, transaction

from kardex import Contention
from kardex.models import LedgerEntry, ProductStock
from kardex.services import locking


pytestmark = pytest.mark.django_db


@pytest.fixture
def short_timeout(settings):
    settings.KARDEX = {'LOCK_TIMEOUT_SECONDS': 0.05, 'LOCK_RETRY_INTERVAL': 0.01}


def busy_for(*products, failures=None):
    """_try_lock replacement: keys of ``products`` stay locked."""
    real = locking._try_lock
    calls = []

    def _try_lock(product_id, location_id):
        calls.append((product_id, location_id))
        if product_id in products and (failures is None or len(calls) <= failures):
            raise OperationalError('database is locked')
        return real(product_id, location_id)

    return _try_lock


class TestContention:

    def test_busy_key_raises_after_timeout(self, ledger, stocked, short_timeout):
        with mock.patch.object(locking, '_try_lock', side_effect=busy_for(stocked)):
            with pytest.raises(Contention) as exc:
                ledger.sale(1, stocked, 'MAIN')

        assert exc.value.retryable
        assert exc.value.as_dict()['code'] == 'CONTENTION'
        assert exc.value.data['attempts'] > 1
        assert LedgerEntry.objects.filter(product_id=stocked).count() == 1

    def test_transient_lock_is_retried(self, ledger, stocked, settings):
        settings.KARDEX = {'LOCK_TIMEOUT_SECONDS': 2.0, 'LOCK_RETRY_INTERVAL': 0.01}

        with mock.patch.object(locking, '_try_lock', side_effect=busy_for(stocked, failures=2)):
            entry = ledger.sale(1, stocked, 'MAIN')

        assert entry.balance_after == 99

    def test_other_keys_are_not_blocked(self, ledger, stocked, short_timeout):
        other = f'{stocked}-OTHER'

        with mock.patch.object(locking, '_try_lock', side_effect=busy_for(stocked)):
            entry = ledger.initial_load(5, other, 'MAIN', unit_cost=1)

        assert entry.balance_after == 5

    def test_transfer_fails_whole_when_destination_busy(self, ledger, stocked, short_timeout):
        real = locking._try_lock

        def dest_busy(product_id, location_id):
            if location_id == 'AMAZON_FBA':
                raise OperationalError('database is locked')
            return real(product_id, location_id)

        with mock.patch.object(locking, '_try_lock', side_effect=dest_busy):
            with pytest.raises(Contention):
                ledger.transfer(10, stocked, 'MAIN', 'AMAZON_FBA')

        assert ledger.current_balance(stocked, 'MAIN').on_hand == 100
        assert ledger.current_balance(stocked, 'AMAZON_FBA').on_hand == 0


class TestLockKeys:

    def test_locks_in_sorted_order(self):
        with mock.patch.object(locking, 'lock_key') as lock_key:
            with transaction.atomic():
                locking.lock_keys([('P', 'MAIN'), ('P', 'AMAZON_FBA'), ('P', 'MAIN')])

        assert [c.args[:2] for c in lock_key.call_args_list] == [
            ('P', 'AMAZON_FBA'),
            ('P', 'MAIN'),
        ]

    def test_creates_balance_row(self):
        with transaction.atomic():
            balance = locking.lock_key('NEW', 'MAIN')

        assert balance.pk is not None
        assert balance.on_hand == 0


class TestLockProduct:

    def test_creates_empty_rollup(self):
        with transaction.atomic():
            stock = locking.lock_product('NEW')

        assert stock.stock_quantity == 0
        assert ProductStock.objects.filter(product_id='NEW').exists()

    def test_keeps_existing_rollup(self, ledger, stocked):
        with transaction.atomic():
            stock = locking.lock_product(stocked)

        assert stock.stock_quantity == 100

    def test_busy_rollup_rolls_back_the_movement(self, ledger, stocked, short_timeout):
        busy = OperationalError('database is locked')

        with mock.patch.object(locking, '_try_lock_product', side_effect=busy):
            with pytest.raises(Contention) as exc:
                ledger.sale(1, stocked, 'MAIN')

        assert exc.value.data['product_id'] == stocked
        assert 'location_id' not in exc.value.data
        assert LedgerEntry.objects.filter(product_id=stocked).count() == 1
        assert ledger.current_balance(stocked, 'MAIN').on_hand == 100
