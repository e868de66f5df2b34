"""Column type inference, field suggestion and import-type classification."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from app.core.config import settings
from app.domain.smart_import.coercion import (
    is_blank,
    is_date_value,
    is_numeric_value,
    normalize_key,
    stringify,
)
from app.domain.smart_import.errors import FileTooLargeError, UnsupportedFileError
from app.domain.smart_import.extraction import RawTable, extract_table
from app.domain.smart_import.file_types import SUPPORTED_FORMATS_MESSAGE, detect_file_type
from app.domain.smart_import.schemas import (
    TARGET_FIELDS,
    ColumnInfo,
    ColumnMapping,
    DetectedType,
    FileAnalysis,
    FileType,
    ImportTarget,
    MappableField,
)
from app.services.vision_client import DocumentVisionClient

logger = logging.getLogger(__name__)

F = MappableField

SAMPLE_SCAN_ROWS = 20
SAMPLE_VALUES = 5
SAMPLE_ROWS = 5
TYPE_MAJORITY = 0.7
CATEGORY_UNIQUE_RATIO = 0.3
CATEGORY_MIN_SAMPLES = 5
LONG_TEXT_LENGTH = 10

BASE_CONFIDENCE = 0.5
KEYWORD_BONUS = 0.3
TYPE_BONUS = 0.2
MAX_CONFIDENCE = 0.95

ASSET_SIGNAL_FIELDS = (F.NOME, F.VALOR_ATUAL, F.INSTITUICAO, F.VALOR_AQUISICAO)

IMAGE_COLUMNS = (
    ("data", DetectedType.DATE, F.DATA, 0.95),
    ("descricao", DetectedType.TEXT, F.DESCRICAO, 0.95),
    ("valor", DetectedType.NUMBER, F.VALOR, 0.95),
    ("tipo", DetectedType.TEXT, F.TIPO, 0.90),
    ("categoria", DetectedType.TEXT, F.CATEGORIA, 0.85),
)


@dataclass(frozen=True)
class FieldRule:
    """One name pattern; rules run in ascending priority and the first match wins."""

    priority: int
    pattern: re.Pattern
    field: MappableField

    def matches(self, normalized: str, header: str) -> bool:
        return bool(self.pattern.search(normalized) or self.pattern.search(header))


def _rule(priority: int, pattern: str, field: MappableField) -> FieldRule:
    return FieldRule(priority, re.compile(pattern, re.IGNORECASE), field)


FIELD_RULES: List[FieldRule] = sorted(
    [
        _rule(10, r"^(data|date|dt|dia|when|quando)$", F.DATA),
        _rule(20, r"^(data|date).*(compra|transacao|lancamento|pagamento|movimento)", F.DATA),
        _rule(30, r"^(datainicio|inicio|startdate|start)$", F.DATA_INICIO),
        _rule(40, r"^(datafim|datatermino|fim|termino|enddate|end)$", F.DATA_FIM),
        _rule(50, r"^(data|date).*(aquisicao|purchase)", F.DATA_AQUISICAO),
        _rule(60, r"(valor|custo|preco).*(aquisicao|compra|purchase|investido)", F.VALOR_AQUISICAO),
        _rule(70, r"valor(atual|corrente|current|mercado)", F.VALOR_ATUAL),
        _rule(80, r"^(descri|desc|description|historico|lancamento|estabelecimento|merchant|detalhe|memo)", F.DESCRICAO),
        _rule(81, r"^(nome|name)$", F.DESCRICAO),
        _rule(90, r"(oque|what|comprei|gastei)", F.DESCRICAO),
        _rule(100, r"^(valor|value|amount|quantia|total|preco|price|quanto)$", F.VALOR),
        _rule(110, r"(valor|value|amount|gastei|paguei)", F.VALOR),
        _rule(120, r"^(tipo|type|natureza|movimento)$", F.TIPO),
        _rule(130, r"^(subcategoria|subcategory)$", F.SUBCATEGORIA),
        _rule(140, r"^(categoria|category|cat|classificacao)$", F.CATEGORIA),
        _rule(150, r"^(conta|account|banco|bank)$", F.CONTA),
        _rule(160, r"^(cartao|card|credito|credit)", F.CARTAO),
        _rule(170, r"^(diadomes|diames|day|vencimento|due|diavencimento)$", F.DIA_MES),
        _rule(180, r"^(obs|observa|nota|note|comment)", F.OBSERVACOES),
        _rule(190, r"^(ativo|asset|investimento|investment|aplicacao|nomedoativo)", F.NOME),
        _rule(200, r"^(instituicao|corretora|broker|custodiante)", F.INSTITUICAO),
    ],
    key=lambda rule: rule.priority,
)

FIELD_KEYWORDS: Dict[MappableField, tuple[str, ...]] = {
    F.DATA: ("data", "date", "dia"),
    F.DESCRICAO: ("descricao", "nome", "estabelecimento", "historico"),
    F.VALOR: ("valor", "value", "total", "preco", "amount"),
    F.CATEGORIA: ("categoria", "category"),
    F.TIPO: ("tipo", "type"),
    F.CONTA: ("conta", "account", "banco"),
    F.CARTAO: ("cartao", "card"),
    F.OBSERVACOES: ("obs", "nota"),
    F.DIA_MES: ("dia", "vencimento"),
    F.DATA_INICIO: ("inicio",),
    F.DATA_FIM: ("fim", "termino"),
    F.NOME: ("ativo", "nome", "investimento"),
    F.VALOR_ATUAL: ("valoratual",),
    F.VALOR_AQUISICAO: ("aquisicao",),
    F.DATA_AQUISICAO: ("aquisicao",),
    F.INSTITUICAO: ("instituicao", "corretora"),
    F.SUBCATEGORIA: ("subcategoria",),
}

COMPATIBLE_FIELDS: Dict[DetectedType, tuple[MappableField, ...]] = {
    DetectedType.DATE: (F.DATA, F.DATA_INICIO, F.DATA_FIM, F.DATA_AQUISICAO),
    DetectedType.NUMBER: (F.VALOR, F.VALOR_ATUAL, F.VALOR_AQUISICAO, F.DIA_MES),
    DetectedType.CATEGORY: (F.CATEGORIA, F.TIPO, F.CONTA, F.CARTAO, F.SUBCATEGORIA, F.INSTITUICAO),
    DetectedType.TEXT: (F.DESCRICAO, F.NOME, F.OBSERVACOES, F.INSTITUICAO, F.CONTA, F.CARTAO, F.SUBCATEGORIA),
}

# Same value under another target's name.
FIELD_ALIASES: Dict[MappableField, MappableField] = {
    F.DESCRICAO: F.NOME,
    F.NOME: F.DESCRICAO,
    F.VALOR: F.VALOR_ATUAL,
    F.VALOR_ATUAL: F.VALOR,
}


def detect_column_type(values: Sequence[Any]) -> DetectedType:
    """Classify sampled non-empty values as date, number, category or text."""
    if not values:
        return DetectedType.UNKNOWN

    total = len(values)
    date_count = 0
    number_count = 0
    for value in values:
        if is_date_value(value):
            date_count += 1
        elif is_numeric_value(value):
            number_count += 1

    if date_count / total > TYPE_MAJORITY:
        return DetectedType.DATE
    if number_count / total > TYPE_MAJORITY:
        return DetectedType.NUMBER

    unique_ratio = len({stringify(value) for value in values}) / total
    if unique_ratio < CATEGORY_UNIQUE_RATIO and total > CATEGORY_MIN_SAMPLES:
        return DetectedType.CATEGORY
    return DetectedType.TEXT


def suggest_field_for_column(
    header: str,
    detected_type: DetectedType,
    sample_values: Sequence[str],
    rules: Sequence[FieldRule] = FIELD_RULES,
) -> MappableField:
    normalized = normalize_key(header)
    lowered = header.strip().lower()
    for rule in rules:
        if rule.matches(normalized, lowered):
            return rule.field

    if detected_type == DetectedType.DATE:
        return F.DATA
    if detected_type == DetectedType.NUMBER:
        return F.VALOR
    if detected_type == DetectedType.CATEGORY:
        return F.CATEGORIA
    if detected_type == DetectedType.TEXT and sample_values:
        average = sum(len(value) for value in sample_values) / len(sample_values)
        if average > LONG_TEXT_LENGTH:
            return F.DESCRICAO
    return F.IGNORAR


def calculate_field_confidence(header: str, detected_type: DetectedType, field: MappableField) -> float:
    if field == F.IGNORAR:
        return BASE_CONFIDENCE

    normalized = normalize_key(header)
    confidence = BASE_CONFIDENCE
    if any(keyword in normalized for keyword in FIELD_KEYWORDS.get(field, ())):
        confidence += KEYWORD_BONUS
    if field in COMPATIBLE_FIELDS.get(detected_type, ()):
        confidence += TYPE_BONUS
    return round(min(confidence, MAX_CONFIDENCE), 2)


def analyze_columns(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> List[ColumnInfo]:
    columns: List[ColumnInfo] = []
    scanned = rows[:SAMPLE_SCAN_ROWS]
    for index, header in enumerate(headers):
        values = [row[index] for row in scanned if index < len(row) and not is_blank(row[index])]
        sample_values = [stringify(value) for value in values[:SAMPLE_VALUES]]
        detected_type = detect_column_type(values)
        field = suggest_field_for_column(header, detected_type, sample_values)
        columns.append(
            ColumnInfo(
                index=index,
                original_name=header,
                normalized_name=normalize_key(header),
                sample_values=sample_values,
                detected_type=detected_type,
                suggested_field=field,
                confidence=calculate_field_confidence(header, detected_type, field),
            )
        )
    return columns


def detect_import_type(columns: Sequence[ColumnInfo]) -> ImportTarget:
    fields = {column.suggested_field for column in columns}

    if sum(1 for field in ASSET_SIGNAL_FIELDS if field in fields) >= 2:
        return ImportTarget.PATRIMONIO
    if F.DIA_MES in fields:
        return ImportTarget.TRANSACOES_FIXAS
    if F.DATA not in fields and F.DESCRICAO in fields and F.VALOR in fields:
        return ImportTarget.TRANSACOES_FIXAS
    return ImportTarget.TRANSACOES


def fit_field_to_target(field: MappableField, import_type: ImportTarget, taken: set) -> MappableField:
    """Translate a field into one the target accepts, else ``ignorar``."""
    allowed = TARGET_FIELDS[import_type]
    if field in allowed:
        return field
    alias = FIELD_ALIASES.get(field)
    if alias is not None and alias in allowed and alias not in taken:
        return alias
    return F.IGNORAR


def generate_suggested_mappings(columns: Sequence[ColumnInfo], import_type: ImportTarget) -> List[ColumnMapping]:
    """One mapping per column; each non-ignorar field is used at most once."""
    mappings: List[ColumnMapping] = []
    taken: set = set()
    ranked = sorted(columns, key=lambda column: (-column.confidence, column.index))
    chosen: Dict[int, MappableField] = {}
    for column in ranked:
        field = fit_field_to_target(column.suggested_field, import_type, taken)
        if field != F.IGNORAR and field in taken:
            field = F.IGNORAR
        if field != F.IGNORAR:
            taken.add(field)
        chosen[column.index] = field

    for column in columns:
        mappings.append(
            ColumnMapping(
                column_index=column.index,
                column_name=column.original_name,
                target_field=chosen[column.index],
                sample_values=list(column.sample_values),
            )
        )
    return mappings


def calculate_confidence(columns: Sequence[ColumnInfo], mappings: Sequence[ColumnMapping]) -> float:
    if not columns:
        return 0.0
    average = sum(column.confidence for column in columns) / len(columns)
    mapped = sum(1 for mapping in mappings if mapping.target_field != F.IGNORAR)
    return round(average * 0.6 + (mapped / len(columns)) * 0.4, 2)


def generate_observations(columns: Sequence[ColumnInfo], row_count: int) -> List[str]:
    observations = [f"{row_count} linhas de dados encontradas"]
    mapped = sum(1 for column in columns if column.suggested_field != F.IGNORAR)
    observations.append(f"{mapped} de {len(columns)} colunas mapeadas automaticamente")

    date_column = next((column for column in columns if column.suggested_field == F.DATA), None)
    if date_column is not None:
        observations.append(f'Coluna de data: "{date_column.original_name}"')
    value_column = next((column for column in columns if column.suggested_field == F.VALOR), None)
    if value_column is not None:
        observations.append(f'Coluna de valor: "{value_column.original_name}"')
    return observations


def _image_analysis(table: RawTable, file_name: str, file_size: int) -> FileAnalysis:
    columns = []
    for index, (name, detected_type, field, confidence) in enumerate(IMAGE_COLUMNS):
        samples = [stringify(row[index]) for row in table.rows[:3]]
        columns.append(
            ColumnInfo(
                index=index,
                original_name=name,
                normalized_name=name,
                sample_values=samples,
                detected_type=detected_type,
                suggested_field=field,
                confidence=confidence,
            )
        )
    mappings = [
        ColumnMapping(
            column_index=column.index,
            column_name=column.original_name,
            target_field=column.suggested_field,
            sample_values=list(column.sample_values),
        )
        for column in columns
    ]
    observations = [
        f"Tipo de documento: {table.document_type or 'outro'}",
        f"{table.row_count} transacoes extraidas via Vision API",
        *table.observations,
    ]
    return FileAnalysis(
        file_name=file_name,
        file_type=FileType.IMAGE,
        file_size=file_size,
        row_count=table.row_count,
        columns=columns,
        sample_rows=[table.row_as_dict(row) for row in table.rows[:SAMPLE_ROWS]],
        suggested_import_type=ImportTarget.TRANSACOES,
        suggested_mappings=mappings,
        confidence=round(table.document_confidence or 0.0, 2),
        observations=observations,
        document_type=table.document_type,
    )


def analyze_table(table: RawTable, file_name: str, file_size: int) -> FileAnalysis:
    """Run column analysis and classification over an extracted table."""
    if table.file_type == FileType.IMAGE:
        return _image_analysis(table, file_name, file_size)

    columns = analyze_columns(table.headers, table.rows)
    import_type = detect_import_type(columns)
    mappings = generate_suggested_mappings(columns, import_type)
    return FileAnalysis(
        file_name=file_name,
        file_type=table.file_type,
        file_size=file_size,
        row_count=table.row_count,
        columns=columns,
        sample_rows=[table.row_as_dict(row) for row in table.rows[:SAMPLE_ROWS]],
        suggested_import_type=import_type,
        suggested_mappings=mappings,
        confidence=calculate_confidence(columns, mappings),
        observations=generate_observations(columns, table.row_count),
    )


def check_upload(filename: Optional[str], content_type: Optional[str], data: bytes) -> FileType:
    """Reject oversized or unsupported uploads before any parsing."""
    if len(data) > settings.import_max_file_bytes:
        raise FileTooLargeError(
            f"Arquivo excede o limite de {settings.IMPORT_MAX_FILE_MB} MB.",
            extra={"max_mb": settings.IMPORT_MAX_FILE_MB},
        )
    file_type = detect_file_type(filename, content_type)
    if file_type is None:
        raise UnsupportedFileError(SUPPORTED_FORMATS_MESSAGE)
    return file_type


async def load_table(
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
    vision_client: Optional[DocumentVisionClient] = None,
) -> RawTable:
    file_type = check_upload(filename, content_type, data)
    return await extract_table(
        data,
        file_type,
        filename=filename,
        content_type=content_type,
        vision_client=vision_client,
    )


async def analyze_file(
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
    vision_client: Optional[DocumentVisionClient] = None,
) -> FileAnalysis:
    """Detect, extract and analyse one uploaded file."""
    table = await load_table(filename, content_type, data, vision_client)
    analysis = analyze_table(table, filename or "arquivo", len(data))
    logger.info(
        "Analysed %s (%s): %d rows, %d columns, suggested %s with confidence %.2f",
        analysis.file_name,
        analysis.file_type.value,
        analysis.row_count,
        len(analysis.columns),
        analysis.suggested_import_type.value,
        analysis.confidence,
    )
    return analysis
