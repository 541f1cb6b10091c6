"""
Payment tracking rows — one per intent, status mirrors the processor.
"""

from __future__ import annotations

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._types import Clock, OwnerKey, OwnerKind, utcnow
from storefront.db import PaymentTable
from storefront.payments._types import PaymentIntent, PaymentRecord, PaymentRecordStatus

log = structlog.get_logger(__name__)


def _to_record(row: PaymentTable) -> PaymentRecord:
    owner = (
        OwnerKey(OwnerKind(row.owner_kind), row.owner_id)
        if row.owner_kind and row.owner_id
        else None
    )
    return PaymentRecord(
        payment_intent_id=row.payment_intent_id,
        amount=row.amount_minor,
        currency=row.currency,
        status=PaymentRecordStatus(row.status),
        checkout_session_id=row.checkout_session_id,
        owner=owner,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class PaymentRecords:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def create(
        self,
        intent: PaymentIntent,
        *,
        checkout_session_id: str | None = None,
        owner: OwnerKey | None = None,
    ) -> PaymentRecord:
        """Insert a pending record; an existing record for the intent is returned as is."""
        now = self._clock()
        row = PaymentTable(
            payment_intent_id=intent.id,
            amount_minor=intent.amount,
            currency=intent.currency,
            status=PaymentRecordStatus.PENDING.value,
            checkout_session_id=checkout_session_id,
            owner_kind=owner.kind.value if owner else None,
            owner_id=owner.id if owner else None,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
                return _to_record(row)
        except IntegrityError:
            existing = await self.get(intent.id)
            if existing is None:
                raise
            return existing

    async def get(self, intent_id: str) -> PaymentRecord | None:
        async with self._session_factory() as session:
            row = await session.get(PaymentTable, intent_id)
            return _to_record(row) if row is not None else None

    async def set_status(
        self, intent_id: str, status: PaymentRecordStatus
    ) -> PaymentRecord | None:
        """Update status; None when the intent was never tracked."""
        async with self._session_factory() as session:
            row = await session.get(PaymentTable, intent_id)
            if row is None:
                log.warning("payment_record_missing", payment_intent_id=intent_id)
                return None
            row.status = status.value
            row.updated_at = self._clock()
            await session.commit()
            return _to_record(row)


__all__ = ("PaymentRecords",)
