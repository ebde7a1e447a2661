"""Billing period keys and stay-length helpers.

A billing period is a calendar month identified by a ``YYYY-MM`` key computed
in the caller's local time zone.
"""

from datetime import date, datetime

PERIOD_KEY_FORMAT = "%Y-%m"


def current_period_key(now: datetime | None = None) -> str:
    """Get the billing period key for an instant.

    Args:
        now: Instant to key (default: local current time)

    Returns:
        Period key such as "2025-11"
    """
    if now is None:
        now = datetime.now()
    return now.strftime(PERIOD_KEY_FORMAT)


def period_start(period_key: str) -> date:
    """Parse a period key back to the first day of its month.

    Raises:
        ValueError: If the key is not in YYYY-MM form
    """
    return datetime.strptime(period_key, PERIOD_KEY_FORMAT).date()


def days_since(instant: date | datetime | None, now: datetime | None = None) -> int:
    """Whole days elapsed since an instant, never negative.

    Args:
        instant: Start of the stay (date or datetime); None means unknown
        now: Reference instant (default: local current time)

    Returns:
        Number of whole days, 0 when instant is None or in the future
    """
    if instant is None:
        return 0
    if now is None:
        now = datetime.now(instant.tzinfo) if isinstance(instant, datetime) else datetime.now()

    if isinstance(instant, datetime):
        if (instant.tzinfo is None) != (now.tzinfo is None):
            # Compare naive wall-clock values when awareness differs
            instant = instant.replace(tzinfo=None)
            now = now.replace(tzinfo=None)
        delta = now - instant
    else:
        delta = now.date() - instant

    return max(delta.days, 0)


__all__ = ["PERIOD_KEY_FORMAT", "current_period_key", "period_start", "days_since"]
