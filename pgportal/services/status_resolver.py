"""Settlement status and running totals derived from a ledger snapshot.

    settled        = any completed record attributed to the current period
    lifetime_total = sum of amounts over completed records

Pure functions: no I/O, independent of record order.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

from pgportal.models.payment import PaymentStatus
from pgportal.services.period_service import current_period_key

_COMPLETED = PaymentStatus.COMPLETED.value
_PENDING = PaymentStatus.PENDING.value


class LedgerEntry(Protocol):
    """Fields of a payment the resolver reads."""

    amount: Decimal
    period_key: str
    status: str


@dataclass(frozen=True)
class LedgerStatus:
    """Derived rent status for one tenant."""

    settled: bool
    lifetime_total: Decimal
    pending_count: int
    monthly_rent: Decimal | None
    period_key: str


def _status_value(status) -> str:
    return status.value if isinstance(status, PaymentStatus) else str(status)


def derive(
    rent_amount: Decimal | None,
    payments: Iterable[LedgerEntry],
    period_key: str | None = None,
) -> LedgerStatus:
    """Derive settlement status for the current period and the lifetime total.

    Args:
        rent_amount: Monthly rent, passed through untouched (None = not assigned)
        payments: Snapshot of the tenant's payment records
        period_key: Period to test for settlement (default: current period)

    Returns:
        LedgerStatus
    """
    if period_key is None:
        period_key = current_period_key()

    settled = False
    lifetime_total = Decimal(0)
    pending_count = 0
    for payment in payments:
        status = _status_value(payment.status)
        if status == _COMPLETED:
            lifetime_total += Decimal(payment.amount)
            if payment.period_key == period_key:
                settled = True
        elif status == _PENDING:
            pending_count += 1

    return LedgerStatus(
        settled=settled,
        lifetime_total=lifetime_total,
        pending_count=pending_count,
        monthly_rent=rent_amount,
        period_key=period_key,
    )


__all__ = ["LedgerStatus", "LedgerEntry", "derive"]
