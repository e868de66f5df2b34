"""State machine driving one import session from upload to result."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from app.domain.smart_import.analysis import analyze_table, load_table
from app.domain.smart_import.context import LookupContext
from app.domain.smart_import.errors import DestinationConfigError, WizardStateError
from app.domain.smart_import.executor import eligible_items, execute_import
from app.domain.smart_import.extraction import RawTable
from app.domain.smart_import.mapping import apply_import_type, raise_for_invalid, validate_mappings
from app.domain.smart_import.preparation import prepare_import_data, preview_fingerprint
from app.domain.smart_import.schemas import (
    ColumnMapping,
    DestinationConfig,
    FileAnalysis,
    ImportConfig,
    ImportResult,
    ImportTarget,
    MappingValidation,
    PreparedImportData,
)
from app.domain.smart_import.store import ImportStore
from app.services.vision_client import DocumentVisionClient

logger = logging.getLogger(__name__)


class WizardState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    AWAITING_MAPPING = "awaiting_mapping"
    AWAITING_DESTINATION = "awaiting_destination"
    PREPARING = "preparing"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"


S = WizardState

BACK_TRANSITIONS = {
    S.AWAITING_MAPPING: S.IDLE,
    S.AWAITING_DESTINATION: S.AWAITING_MAPPING,
    S.AWAITING_CONFIRMATION: S.AWAITING_DESTINATION,
}


class SmartImportWizard:
    """Analyze, map, configure, prepare and execute one file import.

    Every transition replaces ``config`` with a new frozen value. Stage
    failures move the wizard to FAILED and re-raise; mapping and destination
    errors keep it in the step where the user can correct them.
    """

    def __init__(self, store: ImportStore, vision_client: Optional[DocumentVisionClient] = None) -> None:
        self.store = store
        self.vision_client = vision_client
        self._reset()

    def _reset(self) -> None:
        self.state = S.IDLE
        self.config = ImportConfig()
        self.analysis: Optional[FileAnalysis] = None
        self.table: Optional[RawTable] = None
        self.mapping_validation: Optional[MappingValidation] = None
        self.prepared: Optional[PreparedImportData] = None
        self.result: Optional[ImportResult] = None
        self.error: Optional[Exception] = None
        self._context: Optional[LookupContext] = None

    def _require(self, *states: WizardState) -> None:
        if self.state not in states:
            expected = ", ".join(state.value for state in states)
            raise WizardStateError(
                f"Operacao invalida no estado {self.state.value}.",
                extra={"state": self.state.value, "expected": expected},
            )

    def _fail(self, exc: Exception) -> None:
        self.state = S.FAILED
        self.error = exc

    async def lookup_context(self) -> LookupContext:
        """Categories, accounts and cards, loaded once per session."""
        if self._context is None:
            self._context = await self.store.load_lookup_context()
        return self._context

    async def analyze(self, filename: Optional[str], content_type: Optional[str], data: bytes) -> FileAnalysis:
        self._require(S.IDLE, S.COMPLETED, S.FAILED)
        self._reset()
        self.state = S.ANALYZING
        try:
            table = await load_table(filename, content_type, data, self.vision_client)
            analysis = analyze_table(table, filename or "arquivo", len(data))
        except Exception as exc:
            self._fail(exc)
            raise

        self.table = table
        self.analysis = analysis
        self.config = ImportConfig(
            import_type=analysis.suggested_import_type,
            mappings=tuple(analysis.suggested_mappings),
        )
        self.state = S.AWAITING_MAPPING
        logger.info(
            "Analysed %s: %d rows, suggested %s",
            analysis.file_name,
            analysis.row_count,
            analysis.suggested_import_type.value,
        )
        return analysis

    def choose_import_type(self, import_type: ImportTarget) -> ImportConfig:
        """Switch the target, re-targeting the current mappings."""
        self._require(S.AWAITING_MAPPING)
        import_type = ImportTarget(import_type)
        if import_type != self.config.import_type:
            self.config = self.config.model_copy(
                update={
                    "import_type": import_type,
                    "mappings": tuple(apply_import_type(self.config.mappings, import_type)),
                }
            )
        return self.config

    def confirm_mapping(self, mappings: Optional[Sequence[ColumnMapping]] = None) -> MappingValidation:
        """Validate the mapping; duplicates or foreign fields raise, gaps only warn."""
        self._require(S.AWAITING_MAPPING)
        chosen = tuple(mappings) if mappings is not None else self.config.mappings
        column_count = len(self.table.headers) if self.table is not None else None
        validation = validate_mappings(chosen, self.config.import_type, column_count)
        self.mapping_validation = validation
        raise_for_invalid(validation)

        self.config = self.config.model_copy(update={"mappings": chosen})
        self.state = S.AWAITING_DESTINATION
        return validation

    async def prepare(self, destination: Optional[DestinationConfig] = None) -> PreparedImportData:
        self._require(S.AWAITING_DESTINATION)
        destination = destination or DestinationConfig()
        self.config = self.config.model_copy(update={"destination": destination})
        self.state = S.PREPARING
        try:
            context = await self.lookup_context()
            prepared = prepare_import_data(self.table, self.config, context)
        except DestinationConfigError:
            self.state = S.AWAITING_DESTINATION
            raise
        except Exception as exc:
            self._fail(exc)
            raise

        self.prepared = prepared
        self.config = self.config.model_copy(update={"selected_ids": prepared.selected_ids})
        self.state = S.AWAITING_CONFIRMATION
        return prepared

    def select(self, item_id: int, selected: bool = True) -> PreparedImportData:
        """Toggle one item in or out of the import."""
        self._require(S.AWAITING_CONFIRMATION)
        ids = set(self.config.selected_ids)
        if selected:
            ids.add(item_id)
        else:
            ids.discard(item_id)
        return self.set_selected(ids)

    def set_selected(self, item_ids: Iterable[int]) -> PreparedImportData:
        """Replace the selection; ids that do not exist are dropped."""
        self._require(S.AWAITING_CONFIRMATION)
        known = {item.id for item in self.prepared.items}
        selected = frozenset(item_id for item_id in item_ids if item_id in known)
        self.prepared = self.prepared.with_selection(selected)
        self.config = self.config.model_copy(update={"selected_ids": selected})
        return self.prepared

    @property
    def fingerprint(self) -> Optional[str]:
        """Identity of the prepared rows the user is reviewing."""
        if self.prepared is None:
            return None
        return preview_fingerprint(self.prepared, self.config.import_type)

    def verify_preview(self, fingerprint: Optional[str]) -> None:
        """Reject a preparation that no longer matches the reviewed one."""
        self._require(S.AWAITING_CONFIRMATION)
        if not fingerprint or fingerprint != self.fingerprint:
            logger.warning("Prepared rows differ from the reviewed preview for %s", self.config.import_type.value)
            raise WizardStateError(
                "Os dados do arquivo mudaram desde a revisao. Revise a importacao novamente.",
                code="stale_preview",
            )

    async def execute(self) -> ImportResult:
        self._require(S.AWAITING_CONFIRMATION)
        if not eligible_items(self.prepared, self.config.selected_ids):
            raise WizardStateError(
                "Selecione ao menos um item valido para importar.",
                code="nothing_selected",
                status_code=422,
            )

        self.state = S.IMPORTING
        try:
            result = await execute_import(
                self.prepared,
                self.config.import_type,
                self.store,
                self.config.selected_ids,
            )
        except Exception as exc:
            self._fail(exc)
            raise

        self.result = result
        self.state = S.COMPLETED
        return result

    def back(self) -> WizardState:
        """Step back one user-facing stage."""
        target = BACK_TRANSITIONS.get(self.state)
        if target is None:
            raise WizardStateError(
                f"Nao e possivel voltar a partir do estado {self.state.value}.",
                extra={"state": self.state.value},
            )
        if target == S.IDLE:
            self._reset()
            return self.state
        if self.state == S.AWAITING_CONFIRMATION:
            self.prepared = None
            self.config = self.config.model_copy(update={"selected_ids": frozenset()})
        self.state = target
        return self.state

    def cancel(self) -> None:
        """Discard the session; rows already persisted stay persisted."""
        self._reset()

    @property
    def warnings(self) -> List[str]:
        return self.mapping_validation.warnings if self.mapping_validation else []
