"""Ledger store: persistence of rent profiles and payment records.

Every call opens its own short-lived session, so callers never share ORM
state. Committed writes reach the change feed through the ORM listeners the
feed registers (see ChangeFeed.watch).
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pgportal.models import PaymentRecord, PaymentStatus, RentProfile
from pgportal.services.errors import FetchFailed, NotAuthenticated, WriteRejected

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentDraft:
    """A payment record before insert (id and payment_date are store assigned)."""

    tenant_id: str
    amount: Decimal
    payment_method: str
    period_key: str
    transaction_reference: str
    status: PaymentStatus = PaymentStatus.COMPLETED


class LedgerStore:
    """Reads and writes the rent ledger for one tenant per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize with a session factory.

        Args:
            session_factory: Factory producing AsyncSession objects
        """
        self.session_factory = session_factory

    @staticmethod
    def _require_tenant(tenant_id: str | None) -> str:
        if not tenant_id:
            raise NotAuthenticated()
        return tenant_id

    async def fetch_profile(self, tenant_id: str | None) -> RentProfile | None:
        """Get a tenant's rent profile.

        Args:
            tenant_id: Tenant identity

        Returns:
            RentProfile, or None when the operator has not created one yet

        Raises:
            NotAuthenticated: If tenant_id is missing
            FetchFailed: On store or connectivity errors
        """
        tenant_id = self._require_tenant(tenant_id)
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(RentProfile).where(RentProfile.tenant_id == tenant_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning("ledger_store.fetch_profile failed: tenant_id=%s error=%s", tenant_id, e)
            raise FetchFailed(f"Could not load rent profile: {e}") from e

    async def fetch_payments(
        self,
        tenant_id: str | None,
        period_key: str | None = None,
        status: PaymentStatus | str | None = None,
        limit: int | None = None,
    ) -> list[PaymentRecord]:
        """Get a tenant's payments, newest first.

        Args:
            tenant_id: Tenant identity
            period_key: Only records attributed to this period
            status: Only records with this status
            limit: Maximum number of records

        Returns:
            Complete list of matching records ordered by payment_date desc

        Raises:
            NotAuthenticated: If tenant_id is missing
            FetchFailed: On store or connectivity errors
        """
        tenant_id = self._require_tenant(tenant_id)
        stmt = select(PaymentRecord).where(PaymentRecord.tenant_id == tenant_id)
        if period_key is not None:
            stmt = stmt.where(PaymentRecord.period_key == period_key)
        if status is not None:
            stmt = stmt.where(PaymentRecord.status == PaymentStatus(status).value)
        stmt = stmt.order_by(PaymentRecord.payment_date.desc(), PaymentRecord.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                payments = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.warning("ledger_store.fetch_payments failed: tenant_id=%s error=%s", tenant_id, e)
            raise FetchFailed(f"Could not load payments: {e}") from e

        logger.debug(
            "ledger_store.fetch_payments: tenant_id=%s period_key=%s status=%s count=%d",
            tenant_id,
            period_key,
            status,
            len(payments),
        )
        return payments

    async def insert(self, draft: PaymentDraft) -> PaymentRecord:
        """Insert a payment record.

        Args:
            draft: Record contents without id and payment_date

        Returns:
            The stored PaymentRecord with id and payment_date assigned

        Raises:
            NotAuthenticated: If the draft has no tenant
            WriteRejected: On constraint violation or connectivity loss; nothing is applied
        """
        self._require_tenant(draft.tenant_id)
        record = PaymentRecord(
            tenant_id=draft.tenant_id,
            amount=draft.amount,
            payment_method=draft.payment_method,
            period_key=draft.period_key,
            status=PaymentStatus(draft.status).value,
            transaction_reference=draft.transaction_reference,
        )
        async with self.session_factory() as session:
            try:
                session.add(record)
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                reason = str(e.orig) if e.orig is not None else str(e)
                logger.error(
                    "ledger_store.insert rejected: tenant_id=%s ref=%s reason=%s",
                    draft.tenant_id,
                    draft.transaction_reference,
                    reason,
                )
                raise WriteRejected(reason) from e
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(
                    "ledger_store.insert failed: tenant_id=%s ref=%s error=%s",
                    draft.tenant_id,
                    draft.transaction_reference,
                    e,
                )
                raise WriteRejected(str(e)) from e

        logger.info(
            "Recorded payment: tenant_id=%s amount=%s period=%s method=%s id=%s ref=%s",
            record.tenant_id,
            record.amount,
            record.period_key,
            record.payment_method,
            record.id,
            record.transaction_reference,
        )
        return record


__all__ = ["LedgerStore", "PaymentDraft"]
