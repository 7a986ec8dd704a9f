"""
Kardex configuration.

Usage in settings.py:
    KARDEX = {
        "DEFAULT_LOCATION": "MAIN",
        "LOCK_TIMEOUT_SECONDS": 5.0,
        "RESERVATION_TTL_MINUTES": 30,
        "EXPIRED_BATCH_SIZE": 200,
    }
"""

from dataclasses import dataclass
from typing import Any

from django.conf import settings


@dataclass
class KardexSettings:
    """Kardex configuration settings."""

    # Location used when the caller does not name one
    DEFAULT_LOCATION: str = "MAIN"

    # Actor recorded for automated postings (seeding, backfills, expiry jobs)
    SYSTEM_ACTOR: str = "SYSTEM"

    # Bound on per-key lock acquisition before Contention is raised
    LOCK_TIMEOUT_SECONDS: float = 5.0

    # First backoff step while waiting for a busy key (doubles up to 0.5s)
    LOCK_RETRY_INTERVAL: float = 0.05

    # Default reservation TTL in minutes (0 = no expiration)
    RESERVATION_TTL_MINUTES: int = 0

    # Batch size for release_expired processing
    EXPIRED_BATCH_SIZE: int = 200

    # Commit batch size for bulk loads
    BULK_BATCH_SIZE: int = 500

    # Decimal places kept on weighted-average cost
    COST_DECIMAL_PLACES: int = 4


def get_kardex_settings() -> KardexSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "KARDEX", {})
    return KardexSettings(**{
        k: v for k, v in user_settings.items()
        if k in KardexSettings.__dataclass_fields__
    })


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_kardex_settings(), name)


kardex_settings = _LazySettings()
