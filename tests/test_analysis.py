import asyncio

import pytest

from app.core.config import settings
from app.domain.smart_import.analysis import (
    FIELD_RULES,
    FieldRule,
    analyze_columns,
    analyze_file,
    analyze_table,
    calculate_confidence,
    calculate_field_confidence,
    check_upload,
    detect_column_type,
    detect_import_type,
    generate_suggested_mappings,
    suggest_field_for_column,
)
from app.domain.smart_import.errors import FileTooLargeError, UnsupportedFileError
from app.domain.smart_import.extraction import RawTable
from app.domain.smart_import.schemas import DetectedType, FileType, ImportTarget, MappableField

F = MappableField


def _fields(analysis):
    return [mapping.target_field for mapping in analysis.suggested_mappings]


def test_detect_column_type_majorities():
    assert detect_column_type(["15/01/2024", "16/01/2024", "2024-01-17"]) == DetectedType.DATE
    assert detect_column_type(["10,00", "R$ 5,50", "-3", "Mercado"]) == DetectedType.NUMBER
    assert detect_column_type(["Mercado", "Padaria", "10"]) == DetectedType.TEXT
    assert detect_column_type(["Casa", "Casa", "Casa", "Lazer", "Casa", "Lazer", "Casa"]) == DetectedType.CATEGORY
    assert detect_column_type([]) == DetectedType.UNKNOWN


def test_few_repeated_values_stay_text():
    assert detect_column_type(["Casa", "Casa", "Casa", "Casa"]) == DetectedType.TEXT


def test_field_rules_are_ordered_by_priority():
    priorities = [rule.priority for rule in FIELD_RULES]
    assert priorities == sorted(priorities)
    assert all(isinstance(rule, FieldRule) for rule in FIELD_RULES)


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Data", F.DATA),
        ("Data da Compra", F.DATA),
        ("Descrição", F.DESCRICAO),
        ("Histórico", F.DESCRICAO),
        ("Valor (R$)", F.VALOR),
        ("Valor Atual", F.VALOR_ATUAL),
        ("Valor de Aquisição", F.VALOR_AQUISICAO),
        ("Data de Aquisição", F.DATA_AQUISICAO),
        ("Tipo", F.TIPO),
        ("Categoria", F.CATEGORIA),
        ("Subcategoria", F.SUBCATEGORIA),
        ("Conta", F.CONTA),
        ("Cartão", F.CARTAO),
        ("Dia do Mês", F.DIA_MES),
        ("Vencimento", F.DIA_MES),
        ("Observações", F.OBSERVACOES),
        ("Ativo", F.NOME),
        ("Instituição", F.INSTITUICAO),
        ("Data Início", F.DATA_INICIO),
    ],
)
def test_header_rules(header, expected):
    assert suggest_field_for_column(header, DetectedType.UNKNOWN, []) == expected


def test_unnamed_columns_fall_back_to_detected_type():
    assert suggest_field_for_column("Coluna 1", DetectedType.DATE, []) == F.DATA
    assert suggest_field_for_column("Coluna 2", DetectedType.NUMBER, []) == F.VALOR
    assert suggest_field_for_column("Coluna 3", DetectedType.CATEGORY, []) == F.CATEGORIA
    assert suggest_field_for_column("Coluna 4", DetectedType.TEXT, ["Supermercado Central"]) == F.DESCRICAO
    assert suggest_field_for_column("Coluna 5", DetectedType.TEXT, ["ok", "x"]) == F.IGNORAR


def test_field_confidence_bonuses():
    assert calculate_field_confidence("Data", DetectedType.DATE, F.DATA) == 0.95
    assert calculate_field_confidence("Coluna 1", DetectedType.DATE, F.DATA) == 0.7
    assert calculate_field_confidence("Data", DetectedType.TEXT, F.DATA) == 0.8
    assert calculate_field_confidence("Coluna 9", DetectedType.TEXT, F.IGNORAR) == 0.5


def test_transactions_scenario():
    table = RawTable(
        headers=["Data", "Descrição", "Valor"],
        rows=[
            ["15/01/2024", "Mercado", "150,50"],
            ["16/01/2024", "Padaria", "12,00"],
            ["20/01/2024", "Salário", "-5.000,00"],
        ],
        file_type=FileType.CSV,
    )
    analysis = analyze_table(table, "extrato.csv", 120)

    assert analysis.suggested_import_type == ImportTarget.TRANSACOES
    assert _fields(analysis) == [F.DATA, F.DESCRICAO, F.VALOR]
    assert [column.detected_type for column in analysis.columns] == [
        DetectedType.DATE,
        DetectedType.TEXT,
        DetectedType.NUMBER,
    ]
    assert analysis.row_count == 3
    assert analysis.sample_rows[0] == {"Data": "15/01/2024", "Descrição": "Mercado", "Valor": "150,50"}
    assert analysis.confidence == pytest.approx(0.97)
    assert analysis.observations[0] == "3 linhas de dados encontradas"
    assert 'Coluna de data: "Data"' in analysis.observations


def test_recurring_scenario_without_dates():
    table = RawTable(
        headers=["Descrição", "Valor", "Tipo"],
        rows=[["Aluguel", "1.500,00", "Despesa"], ["Salário", "5.000,00", "Receita"]],
        file_type=FileType.CSV,
    )
    analysis = analyze_table(table, "fixas.csv", 80)
    assert analysis.suggested_import_type == ImportTarget.TRANSACOES_FIXAS
    assert _fields(analysis) == [F.DESCRICAO, F.VALOR, F.TIPO]


def test_day_of_month_column_means_recurring():
    table = RawTable(
        headers=["Descrição", "Valor", "Data", "Dia do Mês"],
        rows=[["Internet", "99,90", "01/01/2024", "10"]],
        file_type=FileType.CSV,
    )
    assert analyze_table(table, "fixas.csv", 80).suggested_import_type == ImportTarget.TRANSACOES_FIXAS


def test_assets_scenario_retargets_fields():
    table = RawTable(
        headers=["Ativo", "Instituição", "Valor Atual", "Valor de Aquisição"],
        rows=[["Tesouro Selic", "XP", "10.500,00", "10.000,00"], ["PETR4", "Rico", "3.200,00", "2.800,00"]],
        file_type=FileType.XLSX,
    )
    analysis = analyze_table(table, "carteira.xlsx", 4096)
    assert analysis.suggested_import_type == ImportTarget.PATRIMONIO
    assert _fields(analysis) == [F.NOME, F.INSTITUICAO, F.VALOR_ATUAL, F.VALOR_AQUISICAO]


def test_suggested_mappings_never_repeat_a_field():
    columns = analyze_columns(
        ["Data", "Data Lançamento", "Valor", "Valor Total"],
        [["15/01/2024", "16/01/2024", "10,00", "12,00"]],
    )
    mappings = generate_suggested_mappings(columns, ImportTarget.TRANSACOES)
    used = [mapping.target_field for mapping in mappings if mapping.target_field != F.IGNORAR]
    assert len(used) == len(set(used))
    assert mappings[0].target_field == F.DATA


def test_asset_fields_alias_into_transactions():
    columns = analyze_columns(["Nome do Ativo", "Valor Atual"], [["Carro", "50.000,00"]])
    mappings = generate_suggested_mappings(columns, ImportTarget.TRANSACOES)
    assert [mapping.target_field for mapping in mappings] == [F.DESCRICAO, F.VALOR]


def test_detect_import_type_defaults_to_transactions():
    columns = analyze_columns(["Coluna 1"], [["x"]])
    assert detect_import_type(columns) == ImportTarget.TRANSACOES


def test_confidence_of_empty_analysis_is_zero():
    assert calculate_confidence([], []) == 0.0


def test_analysis_is_deterministic():
    table = RawTable(
        headers=["Data", "Descrição", "Valor", "Categoria"],
        rows=[["15/01/2024", "Mercado", "150,50", "Alimentação"]] * 8,
        file_type=FileType.CSV,
    )
    assert analyze_table(table, "a.csv", 10) == analyze_table(table, "a.csv", 10)


def test_image_analysis_uses_fixed_columns():
    table = RawTable(
        headers=["data", "descricao", "valor", "tipo", "categoria"],
        rows=[["2024-01-15", "Mercado", 150.5, "debito", "alimentacao"]],
        file_type=FileType.IMAGE,
        document_type="cupom_fiscal",
        document_confidence=0.876,
        observations=["Cupom legivel"],
    )
    analysis = analyze_table(table, "cupom.png", 2048)
    assert analysis.suggested_import_type == ImportTarget.TRANSACOES
    assert _fields(analysis) == [F.DATA, F.DESCRICAO, F.VALOR, F.TIPO, F.CATEGORIA]
    assert [column.confidence for column in analysis.columns] == [0.95, 0.95, 0.95, 0.9, 0.85]
    assert analysis.confidence == 0.88
    assert analysis.document_type == "cupom_fiscal"
    assert "Cupom legivel" in analysis.observations


def test_check_upload_limits(monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_MAX_FILE_MB", 1)
    with pytest.raises(FileTooLargeError) as exc_info:
        check_upload("grande.csv", "text/csv", b"x" * (1024 * 1024 + 1))
    assert exc_info.value.status_code == 413
    assert exc_info.value.detail["max_mb"] == 1

    with pytest.raises(UnsupportedFileError):
        check_upload("notas.txt", "text/plain", b"abc")

    assert check_upload("ok.csv", None, b"a,b\n1,2\n") == FileType.CSV


def test_analyze_file_end_to_end(make_csv):
    data = make_csv(["Data;Descrição;Valor", "15/01/2024;Mercado;150,50", "16/01/2024;Padaria;12,00"])
    analysis = asyncio.run(analyze_file("extrato.csv", "text/csv", data))
    assert analysis.file_type == FileType.CSV
    assert analysis.file_size == len(data)
    assert analysis.suggested_import_type == ImportTarget.TRANSACOES
