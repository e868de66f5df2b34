"""Validation of user-confirmed column mappings."""
from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Optional, Sequence

from app.domain.smart_import.analysis import fit_field_to_target
from app.domain.smart_import.errors import MappingValidationError
from app.domain.smart_import.schemas import (
    FIELD_LABELS,
    REQUIRED_FIELDS,
    TARGET_FIELDS,
    ColumnMapping,
    ImportTarget,
    MappableField,
    MappingValidation,
)


def fields_for(import_type: ImportTarget) -> List[dict]:
    """Fields the target accepts, with labels and whether each is required."""
    required = REQUIRED_FIELDS[import_type]
    return [
        {"field": field.value, "label": FIELD_LABELS[field], "required": field in required}
        for field in TARGET_FIELDS[import_type]
    ]


def validate_mappings(
    mappings: Sequence[ColumnMapping],
    import_type: ImportTarget,
    column_count: Optional[int] = None,
) -> MappingValidation:
    allowed = set(TARGET_FIELDS[import_type])
    used = [mapping.target_field for mapping in mappings if mapping.target_field != MappableField.IGNORAR]
    counts = Counter(used)

    duplicates = [field for field, count in counts.items() if count > 1]
    invalid = sorted({field for field in used if field not in allowed}, key=lambda field: field.value)
    missing = [field for field in REQUIRED_FIELDS[import_type] if field not in counts]

    # out of range, or the same column mapped twice
    unknown = {
        mapping.column_index
        for mapping in mappings
        if mapping.column_index < 0 or (column_count is not None and mapping.column_index >= column_count)
    }
    unknown.update(index for index, count in Counter(m.column_index for m in mappings).items() if count > 1)

    return MappingValidation(
        import_type=import_type,
        missing_required=missing,
        duplicate_fields=duplicates,
        invalid_fields=invalid,
        unknown_columns=sorted(unknown),
    )


def raise_for_invalid(validation: MappingValidation) -> MappingValidation:
    """Raise on errors; missing required fields are only warnings."""
    if validation.is_valid:
        return validation

    problems: List[str] = []
    problems.extend(f"Campo mapeado mais de uma vez: {FIELD_LABELS[field]}" for field in validation.duplicate_fields)
    problems.extend(f"Campo nao pertence a este tipo de importacao: {FIELD_LABELS[field]}" for field in validation.invalid_fields)
    problems.extend(f"Coluna invalida: {index}" for index in validation.unknown_columns)
    raise MappingValidationError(
        "Mapeamento de colunas invalido.",
        observations=problems,
        extra={"validation": validation.model_dump(mode="json")},
    )


def apply_import_type(mappings: Iterable[ColumnMapping], import_type: ImportTarget) -> List[ColumnMapping]:
    """Re-target mappings after the user switches import type.

    Fields the new target does not accept move to their alias (descricao/nome,
    valor/valor_atual) when it is free, otherwise to ``ignorar``.
    """
    result: List[ColumnMapping] = []
    taken: set = set()
    for mapping in mappings:
        field = fit_field_to_target(mapping.target_field, import_type, taken)
        if field != MappableField.IGNORAR and field in taken:
            field = MappableField.IGNORAR
        if field != MappableField.IGNORAR:
            taken.add(field)
        result.append(mapping if field == mapping.target_field else mapping.model_copy(update={"target_field": field}))
    return result
