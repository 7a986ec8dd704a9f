"""
Per-key locking — serializes writers of one (product, location).

Writers lock the LocationBalance row of every key they touch before reading
the fold they validate against. Keys are locked in sorted order so that a
transfer (two keys) cannot deadlock against another transfer in the
opposite direction. Different keys never wait on each other.

The product's ProductStock row is the one row shared by every key of a
product. It is locked last, only to rewrite the product rollup, so a writer
never waits for a key lock while holding it.

Must run inside transaction.atomic(): the lock is held until the outer
transaction commits or rolls back.
"""

import logging
import time

from django.db import DatabaseError, transaction

from kardex.conf import kardex_settings
from kardex.exceptions import Contention
from kardex.models.balance import LocationBalance
from kardex.models.product_stock import ProductStock

logger = logging.getLogger('kardex')

MAX_RETRY_INTERVAL = 0.5


def _try_lock(product_id: str, location_id: str) -> LocationBalance:
    """One non-blocking lock attempt inside its own savepoint."""
    with transaction.atomic():
        return LocationBalance.objects.select_for_update(nowait=True).get(
            product_id=product_id, location_id=location_id
        )


def _try_lock_product(product_id: str) -> ProductStock:
    with transaction.atomic():
        return ProductStock.objects.select_for_update(nowait=True).get(product_id=product_id)


def _acquire(attempt, timeout, **context):
    """
    Call ``attempt`` until it returns, backing off exponentially.

    Raises:
        Contention: If the row is still locked after ``timeout`` seconds
    """
    if timeout is None:
        timeout = kardex_settings.LOCK_TIMEOUT_SECONDS
    delay = kardex_settings.LOCK_RETRY_INTERVAL
    deadline = time.monotonic() + timeout

    attempts = 0
    while True:
        attempts += 1
        try:
            return attempt()
        except DatabaseError as exc:
            if time.monotonic() >= deadline:
                logger.warning(
                    "kardex.lock.contention",
                    extra={**context, "attempts": attempts},
                )
                target = '@'.join(str(v) for v in context.values())
                raise Contention(
                    message=f"{target} is locked by another operation, retry later",
                    attempts=attempts,
                    **context,
                ) from exc
            time.sleep(delay)
            delay = min(delay * 2, MAX_RETRY_INTERVAL)


def lock_key(product_id: str, location_id: str,
             timeout: float | None = None) -> LocationBalance:
    """
    Lock the balance row of a key, creating it on first use.

    Retries with exponential backoff until ``timeout`` seconds have passed.

    Raises:
        Contention: If the row is still locked after the timeout
    """
    LocationBalance.objects.get_or_create(product_id=product_id, location_id=location_id)
    return _acquire(
        lambda: _try_lock(product_id, location_id),
        timeout,
        product_id=product_id,
        location_id=location_id,
    )


def lock_keys(keys, timeout: float | None = None) -> dict[tuple[str, str], LocationBalance]:
    """Lock several keys in a deterministic order."""
    locked = {}
    for product_id, location_id in sorted(set(keys)):
        locked[(product_id, location_id)] = lock_key(product_id, location_id, timeout)
    return locked


def lock_product(product_id: str, timeout: float | None = None) -> ProductStock:
    """
    Lock the product rollup row, creating an empty one on first use.

    Callers take it after their key locks and hold no other lock request
    after it.
    """
    # Plain save() is refused on ProductStock; an empty row is safe to insert
    ProductStock.objects.bulk_create([ProductStock(product_id=product_id)], ignore_conflicts=True)
    return _acquire(
        lambda: _try_lock_product(product_id),
        timeout,
        product_id=product_id,
    )
