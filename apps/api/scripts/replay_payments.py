"""Re-apply Mercado Pago payments through the purchase reconciler.

Usage: python scripts/replay_payments.py <payment_id> [<payment_id> ...]

Safe to run repeatedly: payments already applied are reported and skipped.
"""

import asyncio
import os
import sys
from typing import List

# Add parent dir to path to find project modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import async_session_maker
from services.errors import InvalidRequest, ProviderError
from services.payments import MercadoPagoGateway
from services.purchases import PurchaseReconciler


async def replay_payments(payment_ids: List[str]) -> int:
    gateway = MercadoPagoGateway()
    reconciler = PurchaseReconciler(async_session_maker)
    failures = 0

    for payment_id in payment_ids:
        try:
            confirmation = await gateway.fetch_confirmation(payment_id)
        except ProviderError as exc:
            print(f"❌ {payment_id}: lookup failed ({exc.message})")
            failures += 1
            continue
        if confirmation is None:
            print(f"⏭️ {payment_id}: not approved, skipped")
            continue
        try:
            result = await reconciler.apply(confirmation)
        except InvalidRequest as exc:
            print(f"❌ {payment_id}: {exc.message}")
            failures += 1
            continue
        if result.applied:
            print(f"✅ {payment_id}: +{result.credits_granted} credits for {result.user_id} (balance {result.balance_after})")
        else:
            print(f"♻️ {payment_id}: already applied to {result.user_id}")

    return failures


def main() -> int:
    payment_ids = [arg.strip() for arg in sys.argv[1:] if arg.strip()]
    if not payment_ids:
        print(__doc__)
        return 2
    return 1 if asyncio.run(replay_payments(payment_ids)) else 0


if __name__ == "__main__":
    sys.exit(main())
