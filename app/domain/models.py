"""Import every mapped class so ``Base.metadata`` knows all tables."""

from app.domain.accounts.models import Account
from app.domain.assets.models import Asset
from app.domain.cards.models import CreditCard
from app.domain.categories.models import Category
from app.domain.transactions.models import RecurringTransaction, Transaction

__all__ = [
    "Account",
    "Asset",
    "Category",
    "CreditCard",
    "RecurringTransaction",
    "Transaction",
]
