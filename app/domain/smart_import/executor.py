"""Persist selected, valid items one by one and summarise the outcome."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AbstractSet, Iterable, List, Optional

from app.domain.smart_import.schemas import (
    ImportItemError,
    ImportResult,
    ImportSummary,
    ImportTarget,
    PreparedImportData,
    PreparedImportItem,
    TransactionType,
)
from app.domain.smart_import.store import ImportStore

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_LABEL = "Outros"
DEFAULT_TYPE = TransactionType.DESPESA.value


@dataclass(frozen=True)
class ItemOutcome:
    """Result of persisting one item: ``error`` is None on success."""

    item: PreparedImportItem
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def eligible_items(prepared: PreparedImportData, selected_ids: Optional[AbstractSet[int]] = None) -> List[PreparedImportItem]:
    selected = prepared.selected_ids if selected_ids is None else selected_ids
    return [item for item in prepared.items if item.valid and item.id in selected]


async def _persist(store: ImportStore, import_type: ImportTarget, item: PreparedImportItem) -> None:
    if import_type == ImportTarget.TRANSACOES:
        await store.create_transaction(item)
    elif import_type == ImportTarget.TRANSACOES_FIXAS:
        await store.create_recurring_transaction(item)
    else:
        await store.create_asset(item)


def summarize_outcomes(outcomes: Iterable[ItemOutcome], total_items: int) -> ImportResult:
    """Reduce per-item outcomes into the final result."""
    outcomes = list(outcomes)
    summary = ImportSummary()
    errors: List[ImportItemError] = []

    for outcome in outcomes:
        item = outcome.item
        if not outcome.ok:
            errors.append(ImportItemError(item_index=item.id, item_description=item.label, error=outcome.error))
            continue
        value = item.valor if item.valor is not None else (item.valor_atual or 0.0)
        category = item.categoria or DEFAULT_CATEGORY_LABEL
        kind = item.tipo.value if item.tipo else DEFAULT_TYPE
        summary.total_value = round(summary.total_value + value, 2)
        summary.by_category[category] = round(summary.by_category.get(category, 0.0) + value, 2)
        summary.by_type[kind] = round(summary.by_type.get(kind, 0.0) + value, 2)

    imported = len(outcomes) - len(errors)
    return ImportResult(
        success=not errors,
        imported=imported,
        failed=len(errors),
        skipped=total_items - len(outcomes),
        errors=errors,
        summary=summary,
    )


async def execute_import(
    prepared: PreparedImportData,
    import_type: ImportTarget,
    store: ImportStore,
    selected_ids: Optional[AbstractSet[int]] = None,
) -> ImportResult:
    """Persist each eligible item independently; failures never stop the batch."""
    outcomes: List[ItemOutcome] = []
    for item in eligible_items(prepared, selected_ids):
        try:
            await _persist(store, import_type, item)
        except Exception as exc:  # any store failure is recorded against the item
            logger.warning("Import of item %d (%s) failed: %s", item.id, item.label, exc)
            outcomes.append(ItemOutcome(item=item, error=str(exc) or exc.__class__.__name__))
        else:
            outcomes.append(ItemOutcome(item=item))

    result = summarize_outcomes(outcomes, prepared.total_items)
    logger.info(
        "Import %s finished: %d imported, %d failed, %d skipped",
        import_type.value,
        result.imported,
        result.failed,
        result.skipped,
    )
    return result
