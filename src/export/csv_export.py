"""CSV export of saved analyses.

Fixed columns first, then one column per custom field. Object-valued and
array-of-object custom fields are flattened into one ``field.property``
column per distinct property. The column set is the union over every
exported record; a record lacking a column gets an empty cell.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from typing import Any

from src.schemas.analysis import SavedAnalysis
from src.schemas.extraction import ExtractedField

FIXED_COLUMNS = [
    "Titre",
    "Client",
    "Fichier",
    "Statut",
    "Validé",
    "Version",
    "Référence",
    "Matériau",
    "Type de pièce",
    "Pièces/Barre",
    "Coût/Pièce",
    "Date de création",
]
LIST_SEPARATOR = "; "


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Oui" if value else "Non"
    if isinstance(value, list):
        return LIST_SEPARATOR.join(_cell(v) for v in value)
    return str(value)


def _field_values(field: ExtractedField | list[ExtractedField]) -> Any:
    if isinstance(field, list):
        return [item.value for item in field]
    return field.value


def flatten_custom_fields(analysis: SavedAnalysis) -> dict[str, str]:
    """Custom fields of one record as {column: cell}."""
    custom = analysis.analysis_result.extracted_data.custom_fields or {}
    cells: dict[str, str] = {}
    for name, field in custom.items():
        value = _field_values(field)
        if isinstance(value, dict):
            for prop, prop_value in value.items():
                cells[f"{name}.{prop}"] = _cell(prop_value)
        elif isinstance(value, list) and value and all(isinstance(v, dict) for v in value):
            props: dict[str, list[Any]] = {}
            for item in value:
                for prop, prop_value in item.items():
                    props.setdefault(prop, []).append(prop_value)
            for prop, prop_values in props.items():
                cells[f"{name}.{prop}"] = _cell(prop_values)
        else:
            cells[name] = _cell(value)
    return cells


def _fixed_cells(analysis: SavedAnalysis) -> list[str]:
    data = analysis.analysis_result.extracted_data
    calculation = analysis.calculation_result
    return [
        analysis.title,
        analysis.client_name or "",
        analysis.file_name,
        analysis.status.value,
        _cell(analysis.validated),
        str(analysis.version_number),
        _cell(data.reference.value),
        _cell(data.material.value),
        _cell(data.piece_type.value),
        str(calculation.pieces_per_bar) if calculation else "",
        str(calculation.estimated_cost) if calculation else "",
        analysis.created_at.date().isoformat(),
    ]


def export_analyses_csv(analyses: Iterable[SavedAnalysis]) -> str:
    """Render analyses as CSV text (all cells quoted)."""
    records = list(analyses)
    flattened = [flatten_custom_fields(a) for a in records]

    custom_columns: list[str] = []
    seen: set[str] = set()
    for cells in flattened:
        for column in cells:
            if column not in seen:
                seen.add(column)
                custom_columns.append(column)

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(FIXED_COLUMNS + custom_columns)
    for analysis, cells in zip(records, flattened, strict=True):
        writer.writerow(_fixed_cells(analysis) + [cells.get(c, "") for c in custom_columns])
    return buffer.getvalue()
