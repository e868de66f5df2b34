"""Pydantic schemas for the smart import workflow."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ImportTarget(str, Enum):
    """Destination schema of an import."""

    TRANSACOES = "transacoes"
    TRANSACOES_FIXAS = "transacoes_fixas"
    PATRIMONIO = "patrimonio"


class FileType(str, Enum):
    """File formats accepted by the import."""

    PDF = "pdf"
    XLSX = "xlsx"
    XLS = "xls"
    CSV = "csv"
    IMAGE = "image"


class DetectedType(str, Enum):
    """Primitive type inferred for a column."""

    DATE = "date"
    NUMBER = "number"
    TEXT = "text"
    CATEGORY = "category"
    UNKNOWN = "unknown"


class TransactionType(str, Enum):
    RECEITA = "receita"
    DESPESA = "despesa"
    DESPESA_CARTAO = "despesa_cartao"


class MappableField(str, Enum):
    """Every field a source column can be mapped to, across all targets."""

    DATA = "data"
    DESCRICAO = "descricao"
    VALOR = "valor"
    CATEGORIA = "categoria"
    TIPO = "tipo"
    CONTA = "conta"
    CARTAO = "cartao"
    OBSERVACOES = "observacoes"
    DIA_MES = "dia_mes"
    DATA_INICIO = "data_inicio"
    DATA_FIM = "data_fim"
    NOME = "nome"
    VALOR_ATUAL = "valor_atual"
    VALOR_AQUISICAO = "valor_aquisicao"
    DATA_AQUISICAO = "data_aquisicao"
    INSTITUICAO = "instituicao"
    SUBCATEGORIA = "subcategoria"
    IGNORAR = "ignorar"


F = MappableField

TARGET_FIELDS: Dict[ImportTarget, Tuple[MappableField, ...]] = {
    ImportTarget.TRANSACOES: (
        F.DATA, F.DESCRICAO, F.VALOR, F.CATEGORIA, F.TIPO, F.CONTA, F.CARTAO, F.OBSERVACOES, F.IGNORAR,
    ),
    ImportTarget.TRANSACOES_FIXAS: (
        F.DESCRICAO, F.VALOR, F.TIPO, F.DIA_MES, F.CATEGORIA, F.CONTA, F.CARTAO,
        F.DATA_INICIO, F.DATA_FIM, F.OBSERVACOES, F.IGNORAR,
    ),
    ImportTarget.PATRIMONIO: (
        F.NOME, F.CATEGORIA, F.VALOR_ATUAL, F.VALOR_AQUISICAO, F.DATA_AQUISICAO,
        F.INSTITUICAO, F.SUBCATEGORIA, F.OBSERVACOES, F.IGNORAR,
    ),
}

REQUIRED_FIELDS: Dict[ImportTarget, Tuple[MappableField, ...]] = {
    ImportTarget.TRANSACOES: (F.DATA, F.DESCRICAO, F.VALOR),
    ImportTarget.TRANSACOES_FIXAS: (F.DESCRICAO, F.VALOR, F.TIPO, F.DIA_MES),
    ImportTarget.PATRIMONIO: (F.NOME, F.CATEGORIA, F.VALOR_ATUAL),
}

FIELD_LABELS: Dict[MappableField, str] = {
    F.DATA: "Data",
    F.DESCRICAO: "Descrição",
    F.VALOR: "Valor",
    F.CATEGORIA: "Categoria",
    F.TIPO: "Tipo (Receita/Despesa)",
    F.CONTA: "Conta",
    F.CARTAO: "Cartão",
    F.OBSERVACOES: "Observações",
    F.DIA_MES: "Dia do Mês",
    F.DATA_INICIO: "Data Início",
    F.DATA_FIM: "Data Fim",
    F.NOME: "Nome do Ativo",
    F.VALOR_ATUAL: "Valor Atual",
    F.VALOR_AQUISICAO: "Valor de Aquisição",
    F.DATA_AQUISICAO: "Data de Aquisição",
    F.INSTITUICAO: "Instituição",
    F.SUBCATEGORIA: "Subcategoria",
    F.IGNORAR: "Ignorar coluna",
}

PATRIMONIO_CATEGORIES: Dict[str, str] = {
    "liquidez": "Liquidez",
    "renda_fixa": "Renda Fixa",
    "renda_variavel": "Renda Variável",
    "cripto": "Criptomoedas",
    "imoveis": "Imóveis",
    "veiculos": "Veículos",
    "previdencia": "Previdência",
    "outros": "Outros",
}


class ColumnInfo(BaseModel):
    """Inference result for one source column."""

    model_config = ConfigDict(frozen=True)

    index: int
    original_name: str
    normalized_name: str
    sample_values: List[str] = Field(default_factory=list)
    detected_type: DetectedType
    suggested_field: MappableField
    confidence: float


class ColumnMapping(BaseModel):
    """Pairing of a source column with a target field."""

    model_config = ConfigDict(frozen=True)

    column_index: int
    column_name: str
    target_field: MappableField
    sample_values: List[str] = Field(default_factory=list)


class FileAnalysis(BaseModel):
    """Outcome of detection, extraction and column analysis for one file."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    file_type: FileType
    file_size: int
    row_count: int
    columns: List[ColumnInfo]
    sample_rows: List[Dict[str, Any]]
    suggested_import_type: ImportTarget
    suggested_mappings: List[ColumnMapping]
    confidence: float
    observations: List[str] = Field(default_factory=list)
    document_type: Optional[str] = None


class MappingValidation(BaseModel):
    """Problems found in a set of column mappings for a target."""

    model_config = ConfigDict(frozen=True)

    import_type: ImportTarget
    missing_required: List[MappableField] = Field(default_factory=list)
    duplicate_fields: List[MappableField] = Field(default_factory=list)
    invalid_fields: List[MappableField] = Field(default_factory=list)
    unknown_columns: List[int] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """True when the mapping can be confirmed (warnings allowed)."""
        return not (self.duplicate_fields or self.invalid_fields or self.unknown_columns)

    @property
    def is_complete(self) -> bool:
        return self.is_valid and not self.missing_required

    @property
    def warnings(self) -> List[str]:
        return [f"Campo obrigatório não mapeado: {FIELD_LABELS[field]}" for field in self.missing_required]


class DestinationConfig(BaseModel):
    """Where prepared rows go and how their type is decided."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    transaction_type: Literal["receita", "despesa", "despesa_cartao", "auto"] = "auto"
    destination_type: Literal["conta", "cartao", "auto"] = "auto"
    account_id: Optional[int] = None
    card_id: Optional[int] = None
    default_category_id: Optional[int] = None


class ImportConfig(BaseModel):
    """Immutable wizard configuration threaded through every transition."""

    model_config = ConfigDict(frozen=True)

    import_type: ImportTarget = ImportTarget.TRANSACOES
    mappings: Tuple[ColumnMapping, ...] = ()
    destination: DestinationConfig = Field(default_factory=DestinationConfig)
    selected_ids: FrozenSet[int] = frozenset()


class PreparedImportItem(BaseModel):
    """A source row after mapping, coercion and validation."""

    model_config = ConfigDict(frozen=True)

    id: int
    selected: bool = True
    valid: bool = True
    validation_errors: List[str] = Field(default_factory=list)

    data: Optional[str] = None
    descricao: Optional[str] = None
    valor: Optional[float] = None
    tipo: Optional[TransactionType] = None
    categoria: Optional[str] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    card_id: Optional[int] = None
    observacoes: Optional[str] = None

    dia_mes: Optional[int] = None
    data_inicio: Optional[str] = None
    data_fim: Optional[str] = None

    nome: Optional[str] = None
    categoria_patrimonio: Optional[str] = None
    subcategoria: Optional[str] = None
    valor_atual: Optional[float] = None
    valor_aquisicao: Optional[float] = None
    data_aquisicao: Optional[str] = None
    instituicao: Optional[str] = None

    raw_data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.descricao or self.nome or f"Linha {self.id + 1}"


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str


class PreparedImportData(BaseModel):
    """The prepared batch with its aggregate summary."""

    model_config = ConfigDict(frozen=True)

    items: List[PreparedImportItem]
    total_items: int
    valid_items: int
    invalid_items: int
    total_value: float
    date_range: Optional[DateRange] = None
    categories_found: List[str] = Field(default_factory=list)

    @property
    def selected_ids(self) -> FrozenSet[int]:
        return frozenset(item.id for item in self.items if item.selected)

    def with_selection(self, selected_ids: FrozenSet[int]) -> "PreparedImportData":
        """Return a copy where exactly ``selected_ids`` are selected."""
        items = [
            item if item.selected == (item.id in selected_ids)
            else item.model_copy(update={"selected": item.id in selected_ids})
            for item in self.items
        ]
        return self.model_copy(update={"items": items})


class ImportItemError(BaseModel):
    item_index: int
    item_description: str
    error: str


class ImportSummary(BaseModel):
    total_value: float = 0.0
    by_category: Dict[str, float] = Field(default_factory=dict)
    by_type: Dict[str, float] = Field(default_factory=dict)


class ImportResult(BaseModel):
    """Outcome of executing an import."""

    success: bool
    imported: int
    failed: int
    skipped: int
    errors: List[ImportItemError] = Field(default_factory=list)
    summary: ImportSummary = Field(default_factory=ImportSummary)
