"""Payment record ORM model for the rent ledger."""

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from pgportal.models import Base, BaseModel


class PaymentStatus(str, enum.Enum):
    """Settlement state of a single payment record."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentRecord(Base, BaseModel):
    """A tenant's rent payment attributed to one billing period.

    Records are written once by the payment workflow and never mutated
    afterwards. Several completed records may exist for one (tenant, period).
    """

    __tablename__ = "payments"

    tenant_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Owner of the payment",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Paid amount",
    )
    payment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="Assigned by the store at insert",
    )
    payment_method: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="UPI, Card, Net Banking, ...",
    )
    period_key: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="Billing period in YYYY-MM form",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
    )
    transaction_reference: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Client generated before the write is attempted",
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        Index("idx_payments_tenant_period", "tenant_id", "period_key"),
        Index("idx_payments_tenant_date", "tenant_id", "payment_date"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED.value

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord(id={self.id}, tenant_id={self.tenant_id}, amount={self.amount}, "
            f"period_key={self.period_key}, status={self.status})>"
        )


__all__ = ["PaymentRecord", "PaymentStatus"]
