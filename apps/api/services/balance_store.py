"""Durable per-user credit balance store.

Every mutation is a single conditional UPDATE on the account row, so the
database serializes concurrent writers for the same user without any
process-level lock. Each balance change is journaled to ``credit_ledger`` in
the same transaction.
"""

from __future__ import annotations

import logging
from typing import Optional
import uuid

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from config import settings
from models.account import Account
from models.credit_ledger import CreditLedger
from services.errors import InsufficientCredits

logger = logging.getLogger(__name__)


async def read_credits(db: AsyncSession, user_id: str) -> Optional[int]:
    result = await db.execute(select(Account.credits).where(Account.user_id == user_id))
    credits = result.scalar_one_or_none()
    return None if credits is None else int(credits)


def add_ledger_entry(
    db: AsyncSession,
    user_id: str,
    *,
    entry_type: str,
    delta_credits: int,
    balance_after: Optional[int],
    reason: Optional[str] = None,
    reference_id: Optional[str] = None,
    billing_provider: Optional[str] = None,
) -> CreditLedger:
    entry = CreditLedger(
        id=str(uuid.uuid4()),
        user_id=user_id,
        entry_type=entry_type,
        delta_credits=int(delta_credits),
        balance_after=balance_after,
        reason=reason,
        reference_id=reference_id,
        billing_provider=billing_provider,
    )
    db.add(entry)
    return entry


async def apply_increment(
    db: AsyncSession,
    user_id: str,
    amount: int,
    *,
    entry_type: str,
    reason: Optional[str] = None,
    reference_id: Optional[str] = None,
    billing_provider: Optional[str] = None,
) -> int:
    """Add ``amount`` credits inside the caller's transaction and return the new balance.

    The account row must already exist.
    """
    grant = int(amount)
    if grant <= 0:
        raise ValueError("increment amount must be greater than 0")
    result = await db.execute(
        update(Account)
        .where(Account.user_id == user_id)
        .values(credits=Account.credits + grant)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise LookupError(f"Account {user_id} does not exist")
    balance_after = await read_credits(db, user_id)
    add_ledger_entry(
        db,
        user_id,
        entry_type=entry_type,
        delta_credits=grant,
        balance_after=balance_after,
        reason=reason,
        reference_id=reference_id,
        billing_provider=billing_provider,
    )
    await db.flush()
    return int(balance_after or 0)


class BalanceStore:
    """Credit balance operations, each in its own short transaction."""

    def __init__(self, session_maker: async_sessionmaker, initial_grant: Optional[int] = None):
        self._session_maker = session_maker
        grant = settings.INITIAL_CREDIT_GRANT if initial_grant is None else initial_grant
        self.initial_grant = max(int(grant), 0)

    async def get(self, user_id: str) -> int:
        """Return the balance, creating the account with the starting grant on first sight."""
        async with self._session_maker() as db:
            credits = await read_credits(db, user_id)
            if credits is not None:
                return credits

            db.add(Account(user_id=user_id, credits=self.initial_grant, free_tier_used=False))
            if self.initial_grant > 0:
                add_ledger_entry(
                    db,
                    user_id,
                    entry_type="initial_grant",
                    delta_credits=self.initial_grant,
                    balance_after=self.initial_grant,
                    reason="Starting credit grant",
                )
            try:
                await db.commit()
                logger.info("Created account %s with %s starting credits", user_id, self.initial_grant)
            except IntegrityError:
                # Another request created the row first; its grant stands.
                await db.rollback()
            credits = await read_credits(db, user_id)
            return int(credits or 0)

    async def try_decrement(
        self,
        user_id: str,
        amount: int = 1,
        *,
        reason: str = "Diagnosis",
        reference_id: Optional[str] = None,
    ) -> int:
        """Atomically spend ``amount`` credits iff the balance covers it.

        Raises ``InsufficientCredits`` and leaves the balance untouched otherwise.
        Returns the balance after the debit.
        """
        cost = int(amount)
        if cost <= 0:
            raise ValueError("decrement amount must be greater than 0")

        async with self._session_maker() as db:
            result = await db.execute(
                update(Account)
                .where(Account.user_id == user_id, Account.credits >= cost)
                .values(credits=Account.credits - cost, free_tier_used=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                available = await read_credits(db, user_id)
                raise InsufficientCredits(user_id, cost, available)

            balance_after = await read_credits(db, user_id)
            add_ledger_entry(
                db,
                user_id,
                entry_type="debit",
                delta_credits=-cost,
                balance_after=balance_after,
                reason=reason,
                reference_id=reference_id,
            )
            await db.commit()
            return int(balance_after or 0)

    async def increment(
        self,
        user_id: str,
        amount: int,
        *,
        reason: str = "Credit top-up",
        reference_id: Optional[str] = None,
        billing_provider: Optional[str] = None,
    ) -> int:
        """Atomically add ``amount`` credits and return the new balance."""
        await self.get(user_id)
        async with self._session_maker() as db:
            balance_after = await apply_increment(
                db,
                user_id,
                amount,
                entry_type="purchase",
                reason=reason,
                reference_id=reference_id,
                billing_provider=billing_provider,
            )
            await db.commit()
            return balance_after
