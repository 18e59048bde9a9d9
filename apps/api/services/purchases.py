"""Purchase reconciliation: payment confirmations become credit grants exactly once."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.future import select

from config import settings
from models.purchase_record import PurchaseRecord
from services.balance_store import BalanceStore, apply_increment
from services.errors import InvalidRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentConfirmation:
    payment_reference: str
    user_id: str
    sku: str
    provider: str = "mercadopago"


@dataclass(frozen=True)
class ReconcileResult:
    applied: bool
    payment_reference: str
    user_id: str
    credits_granted: int
    balance_after: Optional[int] = None


class PurchaseReconciler:
    """Applies payment confirmations. Safe to call any number of times per payment."""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        *,
        store: Optional[BalanceStore] = None,
        packs: Optional[Dict[str, int]] = None,
    ):
        self._session_maker = session_maker
        self._store = store or BalanceStore(session_maker)
        self._packs = dict(settings.CREDIT_PACKS if packs is None else packs)

    def credits_for_sku(self, sku: str) -> int:
        credits = int(self._packs.get(sku, 0) or 0)
        if credits <= 0:
            raise InvalidRequest(f"Unknown credit pack: {sku}")
        return credits

    async def find_record(self, payment_reference: str) -> Optional[PurchaseRecord]:
        async with self._session_maker() as db:
            result = await db.execute(
                select(PurchaseRecord).where(PurchaseRecord.payment_reference == payment_reference)
            )
            return result.scalar_one_or_none()

    async def apply(self, confirmation: PaymentConfirmation) -> ReconcileResult:
        reference = str(confirmation.payment_reference or "").strip()
        user_id = str(confirmation.user_id or "").strip()
        if not reference:
            raise InvalidRequest("payment_reference is required")
        if not user_id:
            raise InvalidRequest("user_id is required")
        grant = self.credits_for_sku(confirmation.sku)

        existing = await self.find_record(reference)
        if existing is not None:
            return self._replayed(existing, user_id)

        # Account creation commits separately so a creation race cannot be
        # mistaken for a duplicate payment below.
        await self._store.get(user_id)

        async with self._session_maker() as db:
            db.add(
                PurchaseRecord(
                    payment_reference=reference,
                    user_id=user_id,
                    sku=confirmation.sku,
                    credits_granted=grant,
                    provider=confirmation.provider,
                )
            )
            try:
                await db.flush()
                balance_after = await apply_increment(
                    db,
                    user_id,
                    grant,
                    entry_type="purchase",
                    reason=f"Credit pack {confirmation.sku}",
                    reference_id=reference,
                    billing_provider=confirmation.provider,
                )
                await db.commit()
            except IntegrityError:
                await db.rollback()
                existing = await self.find_record(reference)
                if existing is None:
                    raise
                return self._replayed(existing, user_id)

        logger.info(
            "Applied payment %s: +%s credits for %s (balance %s)",
            reference,
            grant,
            user_id,
            balance_after,
        )
        return ReconcileResult(
            applied=True,
            payment_reference=reference,
            user_id=user_id,
            credits_granted=grant,
            balance_after=balance_after,
        )

    def _replayed(self, record: PurchaseRecord, user_id: str) -> ReconcileResult:
        if record.user_id != user_id:
            logger.warning(
                "Payment %s replayed for %s but was applied to %s",
                record.payment_reference,
                user_id,
                record.user_id,
            )
        else:
            logger.info("Payment %s already applied, ignoring replay", record.payment_reference)
        return ReconcileResult(
            applied=False,
            payment_reference=record.payment_reference,
            user_id=record.user_id,
            credits_granted=int(record.credits_granted),
        )
