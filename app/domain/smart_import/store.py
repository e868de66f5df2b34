"""Data store used by the import: lookups and one insert per item."""
from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.accounts.models import Account
from app.domain.assets.models import Asset
from app.domain.cards.models import CreditCard
from app.domain.categories.models import Category
from app.domain.smart_import.context import LookupContext
from app.domain.smart_import.schemas import PreparedImportItem, TransactionType
from app.domain.transactions.models import RecurringTransaction, Transaction

logger = logging.getLogger(__name__)

IMPORT_MARKER = "[importado]"


class ImportStore(Protocol):
    async def load_lookup_context(self) -> LookupContext:
        ...

    async def create_transaction(self, item: PreparedImportItem) -> None:
        ...

    async def create_recurring_transaction(self, item: PreparedImportItem) -> None:
        ...

    async def create_asset(self, item: PreparedImportItem) -> None:
        ...


def mark_imported(notes: Optional[str]) -> str:
    """Append the import marker to free-text notes."""
    return f"{notes} {IMPORT_MARKER}" if notes else IMPORT_MARKER


def _to_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


class SqlAlchemyImportStore:
    """ImportStore backed by the async SQLAlchemy session of one user."""

    def __init__(self, db: AsyncSession, user_id: int, *, today: Callable[[], date] = date.today) -> None:
        self.db = db
        self.user_id = user_id
        self._today = today

    async def load_lookup_context(self) -> LookupContext:
        categories = (
            await self.db.execute(select(Category).where(Category.user_id == self.user_id).order_by(Category.id))
        ).scalars().all()
        accounts = (
            await self.db.execute(select(Account).where(Account.user_id == self.user_id).order_by(Account.id))
        ).scalars().all()
        cards = (
            await self.db.execute(select(CreditCard).where(CreditCard.user_id == self.user_id).order_by(CreditCard.id))
        ).scalars().all()
        return LookupContext.build(categories, accounts, cards)

    async def create_transaction(self, item: PreparedImportItem) -> None:
        await self._save(
            Transaction(
                user_id=self.user_id,
                account_id=item.account_id,
                card_id=item.card_id,
                amount=abs(item.valor or 0.0),
                transaction_type=(item.tipo or TransactionType.DESPESA).value,
                category_id=item.category_id,
                description=item.descricao,
                transaction_date=_to_date(item.data),
                status="confirmado",
                notes=mark_imported(item.observacoes),
            )
        )

    async def create_recurring_transaction(self, item: PreparedImportItem) -> None:
        await self._save(
            RecurringTransaction(
                user_id=self.user_id,
                account_id=item.account_id,
                card_id=item.card_id,
                description=item.descricao,
                amount=abs(item.valor or 0.0),
                transaction_type=(item.tipo or TransactionType.DESPESA).value,
                category_id=item.category_id,
                day_of_month=item.dia_mes or 1,
                start_date=_to_date(item.data_inicio) or self._today(),
                end_date=_to_date(item.data_fim),
                notes=mark_imported(item.observacoes),
                active=True,
            )
        )

    async def create_asset(self, item: PreparedImportItem) -> None:
        await self._save(
            Asset(
                user_id=self.user_id,
                name=item.nome,
                category=item.categoria_patrimonio or "outros",
                subcategory=item.subcategoria,
                current_value=item.valor_atual,
                acquisition_value=item.valor_aquisicao,
                acquisition_date=_to_date(item.data_aquisicao),
                institution=item.instituicao,
                notes=mark_imported(item.observacoes),
                active=True,
            )
        )

    async def _save(self, record) -> None:
        self.db.add(record)
        try:
            await self.db.flush()
            record_id = record.id
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        logger.debug("Imported %s id=%s for user %s", record.__tablename__, record_id, self.user_id)
