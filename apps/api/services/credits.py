"""Credit spend commit for paid diagnoses."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Optional, Set

from services.balance_store import BalanceStore
from services.errors import InsufficientCredits, LedgerCommitWarning

logger = logging.getLogger(__name__)

DIAGNOSIS_COST = 1

_pending_commits: Set[asyncio.Task] = set()


@dataclass
class SpendOutcome:
    charged: bool
    balance_after: int
    warning: Optional[LedgerCommitWarning] = None

    @property
    def lost_race(self) -> bool:
        return not self.charged and self.warning is None


class LedgerTransaction:
    """Commits the debit for a diagnosis whose content already exists.

    Callers must only invoke ``commit_spend`` after the provider returned a
    validated result; nothing here talks to the provider.
    """

    def __init__(self, store: BalanceStore):
        self._store = store

    async def commit_spend(
        self,
        user_id: str,
        *,
        balance_before: int,
        reason: str = "Full diagnosis",
        reference_id: Optional[str] = None,
    ) -> SpendOutcome:
        """Debit one credit. The debit completes even if the caller is cancelled."""
        task = asyncio.create_task(
            self._debit(user_id, balance_before=balance_before, reason=reason, reference_id=reference_id),
            name=f"debit:{user_id}",
        )
        _pending_commits.add(task)
        task.add_done_callback(_pending_commits.discard)
        return await asyncio.shield(task)

    async def _debit(
        self,
        user_id: str,
        *,
        balance_before: int,
        reason: str,
        reference_id: Optional[str],
    ) -> SpendOutcome:
        try:
            balance_after = await self._store.try_decrement(
                user_id,
                DIAGNOSIS_COST,
                reason=reason,
                reference_id=reference_id,
            )
            return SpendOutcome(charged=True, balance_after=balance_after)
        except InsufficientCredits as exc:
            # A concurrent request spent the last credit between gate and commit.
            logger.info("Spend rejected for %s: %s", user_id, exc.message)
            return SpendOutcome(charged=False, balance_after=max(int(exc.available or 0), 0))
        except Exception as exc:
            # Any store failure here is reported as a pending charge.
            warning = LedgerCommitWarning(user_id, str(exc))
            logger.error("Ledger commit failed, reconciliation needed: %s", warning.message)
            return SpendOutcome(charged=False, balance_after=max(int(balance_before), 0), warning=warning)


async def drain_pending_commits(timeout: float = 10.0) -> int:
    """Wait for debits still running after their requests went away.

    Returns how many finished; any still running at the deadline are logged by
    task name (``debit:<user_id>``) so they can be reconciled by hand.
    """
    pending = list(_pending_commits)
    if not pending:
        return 0
    done, still_running = await asyncio.wait(pending, timeout=timeout)
    for task in still_running:
        logger.error("Debit %s still running at shutdown, reconciliation needed", task.get_name())
    return len(done)
