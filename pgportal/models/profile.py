"""Rent profile ORM model (one row per tenant)."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from pgportal.models import Base, BaseModel


class RentProfile(Base, BaseModel):
    """Tenant stay details maintained by the operator.

    The portal only reads this row; assignment of rent and rooms happens in
    the administrative process.
    """

    __tablename__ = "rent_profiles"

    tenant_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Tenant identity from the auth provider",
    )
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    monthly_rent: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2),
        nullable=True,
        comment="NULL until rent is assigned",
    )
    room_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    bed_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    joining_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    telegram_id: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="Chat used for payment feedback messages",
    )

    def __repr__(self) -> str:
        return (
            f"<RentProfile(id={self.id}, tenant_id={self.tenant_id}, "
            f"monthly_rent={self.monthly_rent}, room={self.room_number})>"
        )


__all__ = ["RentProfile"]
