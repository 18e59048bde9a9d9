"""Entitlement gate deciding which diagnosis tier a caller receives."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class Tier(str, Enum):
    ANONYMOUS = "anonymous"
    NO_CREDIT = "no_credit"
    FULL = "full"

    @property
    def is_full(self) -> bool:
        return self is Tier.FULL


def decide_tier(user_id: Optional[str], credits: int) -> Tier:
    """Map identity and balance to a tier. Pure, no I/O."""
    if not user_id:
        return Tier.ANONYMOUS
    if int(credits or 0) <= 0:
        return Tier.NO_CREDIT
    return Tier.FULL
