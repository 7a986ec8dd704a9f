"""
Pytest fixtures for Kardex tests.
"""

import itertools
from datetime import timedelta

import pytest
from django.utils import timezone

from kardex.models import Location, LocationKind
from kardex.service import Kardex


_product_ids = itertools.count(1)


@pytest.fixture
def main(db):
    """Our own warehouse."""
    location, _ = Location.objects.get_or_create(
        code='MAIN',
        defaults={'name': 'Main warehouse', 'kind': LocationKind.WAREHOUSE},
    )
    return location


@pytest.fixture
def fba(db):
    """Amazon fulfillment center (third-party controlled)."""
    location, _ = Location.objects.get_or_create(
        code='AMAZON_FBA',
        defaults={'name': 'Amazon FBA', 'kind': LocationKind.FBA, 'is_virtual': True},
    )
    return location


@pytest.fixture
def meli(db):
    """Mercado Libre Full fulfillment center."""
    location, _ = Location.objects.get_or_create(
        code='MELI_FULL',
        defaults={
            'name': 'Mercado Libre Full',
            'kind': LocationKind.FULFILLMENT_CENTER,
            'is_virtual': True,
        },
    )
    return location


@pytest.fixture
def ledger(db, main, fba, meli):
    """Kardex facade with default collaborators."""
    return Kardex()


@pytest.fixture
def product():
    """A fresh product id."""
    return f'TIRE-{next(_product_ids)}'


@pytest.fixture
def stocked(ledger, product):
    """Product with 100 units at MAIN costing 58 each."""
    ledger.initial_load(100, product, 'MAIN', unit_cost=58)
    return product


@pytest.fixture
def now():
    return timezone.now()


@pytest.fixture
def hours_ago(now):
    """Return a timestamp ``n`` hours before now."""
    def _ago(n):
        return now - timedelta(hours=n)
    return _ago
