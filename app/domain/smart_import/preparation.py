"""Apply confirmed mappings to every row: coerce, resolve and validate."""
from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from app.domain.smart_import.coercion import (
    is_blank,
    normalize_key,
    parse_date,
    parse_day_of_month,
    parse_number,
    parse_text,
    parse_transaction_type,
)
from app.domain.smart_import.context import LookupContext
from app.domain.smart_import.errors import DestinationConfigError
from app.domain.smart_import.extraction import RawTable
from app.domain.smart_import.schemas import (
    DateRange,
    DestinationConfig,
    ImportConfig,
    ImportTarget,
    MappableField,
    PreparedImportData,
    PreparedImportItem,
    TransactionType,
)

logger = logging.getLogger(__name__)

F = MappableField

DATE_FIELDS = {
    F.DATA: ("data", "Data inválida."),
    F.DATA_INICIO: ("data_inicio", "Data de início inválida."),
    F.DATA_FIM: ("data_fim", "Data de fim inválida."),
    F.DATA_AQUISICAO: ("data_aquisicao", "Data de aquisição inválida."),
}

TEXT_FIELDS = {
    F.OBSERVACOES: "observacoes",
    F.INSTITUICAO: "instituicao",
    F.SUBCATEGORIA: "subcategoria",
}

REQUIRED_CHECKS: Dict[ImportTarget, tuple[tuple[str, str], ...]] = {
    ImportTarget.TRANSACOES: (
        ("data", "Data obrigatoria"),
        ("descricao", "Descricao obrigatoria"),
        ("valor", "Valor obrigatorio"),
    ),
    ImportTarget.TRANSACOES_FIXAS: (
        ("descricao", "Descricao obrigatoria"),
        ("valor", "Valor obrigatorio"),
        ("tipo", "Tipo obrigatorio"),
        ("dia_mes", "Dia do mes obrigatorio"),
    ),
    ImportTarget.PATRIMONIO: (
        ("nome", "Nome obrigatorio"),
        ("categoria_patrimonio", "Categoria obrigatoria"),
        ("valor_atual", "Valor atual obrigatorio"),
    ),
}

PATRIMONIO_CATEGORY_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "liquidez": ("liquidez", "caixa", "contacorrente", "poupanca", "reserva"),
    "renda_fixa": ("rendafixa", "cdb", "lci", "lca", "tesouro", "debenture"),
    "renda_variavel": ("rendavariavel", "acoes", "acao", "fii", "fundoimobiliario", "etf", "bdr"),
    "cripto": ("cripto", "bitcoin", "btc", "ethereum"),
    "imoveis": ("imoveis", "imovel", "apartamento", "casa", "terreno"),
    "veiculos": ("veiculos", "veiculo", "carro", "moto"),
    "previdencia": ("previdencia", "pgbl", "vgbl"),
    "outros": ("outros",),
}


def normalize_patrimonio_category(value: Optional[str]) -> str:
    """Map a free-text asset category to one of the patrimony slugs."""
    if not value:
        return "outros"
    key = normalize_key(value)
    for slug, keywords in PATRIMONIO_CATEGORY_KEYWORDS.items():
        if any(key == keyword or key.startswith(keyword) for keyword in keywords):
            return slug
    return "outros"


def validate_destination(destination: DestinationConfig, context: Optional[LookupContext] = None) -> None:
    """Reject destinations that point at a missing or unknown account/card."""
    if destination.destination_type == "cartao" and destination.card_id is None:
        raise DestinationConfigError("Selecione o cartao de destino.")
    if destination.destination_type == "conta" and destination.account_id is None:
        raise DestinationConfigError("Selecione a conta de destino.")
    if context is None:
        return
    if destination.card_id is not None and destination.card_id not in {card.id for card in context.cards}:
        raise DestinationConfigError("Cartao de destino nao encontrado.", extra={"card_id": destination.card_id})
    if destination.account_id is not None and destination.account_id not in {
        account.id for account in context.accounts
    }:
        raise DestinationConfigError("Conta de destino nao encontrada.", extra={"account_id": destination.account_id})
    if destination.default_category_id is not None and destination.default_category_id not in {
        category.id for category in context.categories
    }:
        raise DestinationConfigError(
            "Categoria padrao nao encontrada.",
            extra={"default_category_id": destination.default_category_id},
        )


def _positive(value: Optional[float]) -> Optional[float]:
    return abs(value) if value is not None else None


def process_row(
    index: int,
    row: Sequence[Any],
    headers: Sequence[str],
    config: ImportConfig,
    context: LookupContext,
) -> PreparedImportItem:
    """Build one prepared item from a raw row."""
    raw_data = {header: (row[i] if i < len(row) else None) for i, header in enumerate(headers)}
    values: Dict[str, Any] = {}
    errors: List[str] = []
    account_name: Optional[str] = None
    card_name: Optional[str] = None

    for mapping in config.mappings:
        field = mapping.target_field
        if field == F.IGNORAR:
            continue
        value = row[mapping.column_index] if 0 <= mapping.column_index < len(row) else None

        if field in DATE_FIELDS:
            attribute, message = DATE_FIELDS[field]
            values[attribute] = parse_date(value)
            if values[attribute] is None and not is_blank(value):
                errors.append(message)
        elif field in (F.DESCRICAO, F.NOME):
            text = parse_text(value)
            values["descricao"] = text
            values["nome"] = text
        elif field in (F.VALOR, F.VALOR_ATUAL):
            amount = parse_number(value)
            values["valor"] = amount
            values["valor_atual"] = amount
            if amount is None and not is_blank(value):
                errors.append("Valor inválido.")
        elif field == F.VALOR_AQUISICAO:
            values["valor_aquisicao"] = parse_number(value)
            if values["valor_aquisicao"] is None and not is_blank(value):
                errors.append("Valor de aquisição inválido.")
        elif field == F.CATEGORIA:
            values["categoria"] = parse_text(value)
        elif field == F.TIPO:
            values["tipo"] = parse_transaction_type(value)
        elif field == F.DIA_MES:
            values["dia_mes"] = parse_day_of_month(value)
            if values["dia_mes"] is None and not is_blank(value):
                errors.append("Dia do mês inválido.")
        elif field == F.CONTA:
            account_name = parse_text(value)
        elif field == F.CARTAO:
            card_name = parse_text(value)
        elif field in TEXT_FIELDS:
            values[TEXT_FIELDS[field]] = parse_text(value)

    destination = config.destination
    amount = values.get("valor")

    if config.import_type == ImportTarget.PATRIMONIO:
        if values.get("categoria"):
            values["categoria_patrimonio"] = normalize_patrimonio_category(values["categoria"])
    else:
        if destination.transaction_type != "auto":
            values["tipo"] = TransactionType(destination.transaction_type)
        elif values.get("tipo") is None and amount is not None:
            values["tipo"] = TransactionType.RECEITA if amount < 0 else TransactionType.DESPESA

        if destination.destination_type == "cartao" and destination.card_id is not None:
            values["card_id"] = destination.card_id
            values["tipo"] = TransactionType.DESPESA_CARTAO
        elif destination.destination_type == "conta" and destination.account_id is not None:
            values["account_id"] = destination.account_id
        elif destination.destination_type == "auto":
            if account_name:
                values["account_id"] = context.resolve_account(account_name)
            if card_name:
                card_id = context.resolve_card(card_name)
                if card_id is not None:
                    values["card_id"] = card_id
                    values["tipo"] = TransactionType.DESPESA_CARTAO

        tipo = values.get("tipo")
        if values.get("categoria"):
            values["category_id"] = context.resolve_category(values["categoria"], tipo.value if tipo else None)
        if values.get("category_id") is None and destination.default_category_id is not None:
            values["category_id"] = destination.default_category_id

    for attribute in ("valor", "valor_atual", "valor_aquisicao"):
        values[attribute] = _positive(values.get(attribute))

    for attribute, message in REQUIRED_CHECKS[config.import_type]:
        if values.get(attribute) in (None, ""):
            errors.append(message)

    return PreparedImportItem(
        id=index,
        selected=not errors,
        valid=not errors,
        validation_errors=errors,
        raw_data=raw_data,
        **values,
    )


def prepare_import_data(table: RawTable, config: ImportConfig, context: LookupContext) -> PreparedImportData:
    """Prepare every data row of ``table`` and summarise the batch."""
    validate_destination(config.destination, context)

    items = [process_row(index, row, table.headers, config, context) for index, row in enumerate(table.rows)]
    valid_items = [item for item in items if item.valid]

    total_value = round(sum(item.valor or 0.0 for item in valid_items), 2)
    dates = sorted(item.data for item in valid_items if item.data)
    categories: List[str] = []
    for item in items:
        if item.categoria and item.categoria not in categories:
            categories.append(item.categoria)

    prepared = PreparedImportData(
        items=items,
        total_items=len(items),
        valid_items=len(valid_items),
        invalid_items=len(items) - len(valid_items),
        total_value=total_value,
        date_range=DateRange(start=dates[0], end=dates[-1]) if dates else None,
        categories_found=categories,
    )
    logger.info(
        "Prepared %d rows for %s: %d valid, %d invalid, total %.2f",
        prepared.total_items,
        config.import_type.value,
        prepared.valid_items,
        prepared.invalid_items,
        prepared.total_value,
    )
    return prepared


def preview_fingerprint(prepared: PreparedImportData, import_type: ImportTarget) -> str:
    """Stable hash of the prepared rows, ignoring which ones are selected."""
    payload = {
        "import_type": ImportTarget(import_type).value,
        "items": [item.model_dump(mode="json", exclude={"selected"}) for item in prepared.items],
    }
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
