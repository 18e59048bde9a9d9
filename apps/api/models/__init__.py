"""Models package."""

from .account import Account
from .credit_ledger import CreditLedger
from .purchase_record import PurchaseRecord
