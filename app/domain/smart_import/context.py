"""Per-session lookup of the user's categories, accounts and cards."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from app.domain.smart_import.coercion import normalize_key


@dataclass(frozen=True)
class CategoryRef:
    id: int
    name: str
    type: Optional[str] = None


@dataclass(frozen=True)
class AccountRef:
    id: int
    name: str
    account_type: Optional[str] = None


@dataclass(frozen=True)
class CardRef:
    id: int
    name: str
    last_four_digits: Optional[str] = None


@dataclass(frozen=True)
class LookupContext:
    """Name indexes loaded once at the start of an import session."""

    categories: Tuple[CategoryRef, ...] = ()
    accounts: Tuple[AccountRef, ...] = ()
    cards: Tuple[CardRef, ...] = ()
    _category_index: Dict[str, Tuple[CategoryRef, ...]] = field(default_factory=dict, repr=False, compare=False)
    _account_index: Dict[str, AccountRef] = field(default_factory=dict, repr=False, compare=False)
    _card_index: Dict[str, CardRef] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def build(
        cls,
        categories: Iterable[Any] = (),
        accounts: Iterable[Any] = (),
        cards: Iterable[Any] = (),
    ) -> "LookupContext":
        """Index ORM rows (or refs) by normalized and lower-cased name."""
        category_refs = tuple(
            CategoryRef(id=item.id, name=item.name, type=getattr(item, "type", None)) for item in categories
        )
        account_refs = tuple(
            AccountRef(id=item.id, name=item.name, account_type=getattr(item, "account_type", None))
            for item in accounts
        )
        card_refs = tuple(
            CardRef(id=item.id, name=item.name, last_four_digits=getattr(item, "last_four_digits", None))
            for item in cards
        )

        category_index: Dict[str, Tuple[CategoryRef, ...]] = {}
        for ref in category_refs:
            for key in _keys(ref.name):
                category_index[key] = category_index.get(key, ()) + (ref,)

        account_index: Dict[str, AccountRef] = {}
        for ref in account_refs:
            for key in _keys(ref.name):
                account_index.setdefault(key, ref)

        card_index: Dict[str, CardRef] = {}
        for ref in card_refs:
            for key in _keys(ref.name):
                card_index.setdefault(key, ref)
            if ref.last_four_digits:
                card_index.setdefault(ref.last_four_digits.strip(), ref)

        return cls(
            categories=category_refs,
            accounts=account_refs,
            cards=card_refs,
            _category_index=category_index,
            _account_index=account_index,
            _card_index=card_index,
        )

    def resolve_category(self, name: Optional[str], transaction_type: Optional[str] = None) -> Optional[int]:
        """Category id for a name, preferring one whose type matches."""
        matches = self._lookup(self._category_index, name)
        if not matches:
            return None
        if transaction_type:
            wanted = "receita" if transaction_type == "receita" else "despesa"
            for ref in matches:
                if ref.type == wanted:
                    return ref.id
        return matches[0].id

    def resolve_account(self, name: Optional[str]) -> Optional[int]:
        ref = self._lookup(self._account_index, name)
        return ref.id if ref else None

    def resolve_card(self, name: Optional[str]) -> Optional[int]:
        """Card id by name or by its last four digits."""
        ref = self._lookup(self._card_index, name)
        if ref is None and name:
            digits = "".join(char for char in str(name) if char.isdigit())
            if len(digits) >= 4:
                ref = self._card_index.get(digits[-4:])
        return ref.id if ref else None

    @staticmethod
    def _lookup(index: Dict[str, Any], name: Optional[str]) -> Any:
        if not name or not str(name).strip():
            return None
        for key in _keys(str(name)):
            if key in index:
                return index[key]
        return None


def _keys(name: str) -> Tuple[str, ...]:
    lowered = name.strip().lower()
    normalized = normalize_key(name)
    return tuple(dict.fromkeys(key for key in (normalized, lowered) if key))
