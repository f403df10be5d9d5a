"""Calculation engine — evaluates every material and formula against one extraction.

Pure Python orchestrator. No gateway access, no AI calls.
The workflow controller stores the outcome and persists it with the analysis.
"""

from __future__ import annotations

import logging
from typing import Any

from src.calculation.bindings import extraction_bindings, material_bindings
from src.calculation.compatibility import filter_compatible_materials
from src.calculation.exceptions import CalculationPreconditionError
from src.calculators.bar_yield import (
    END_MARGIN,
    SAW_KERF,
    clamp_pieces,
    cost_per_piece,
    default_pieces_per_bar,
    parse_length,
)
from src.formulas import FormulaError, evaluate_condition, evaluate_yield
from src.schemas.calculation import CalculationOutcome, CalculationResult, candidate_key
from src.schemas.catalog import ClientProfile, Formula, Material
from src.schemas.extraction import ExtractedData, ExtractionResult

logger = logging.getLogger(__name__)

LENGTH_DIMENSION = "longueur"
MISSING_LENGTH_MESSAGE = "La longueur de la pièce n'est pas définie ou invalide."


def piece_length(data: ExtractedData) -> float:
    """Return the extracted piece length.

    Raises:
        CalculationPreconditionError: If the length is missing, non-numeric,
            or not strictly positive.
    """
    dimension = data.dimensions.get(LENGTH_DIMENSION)
    length = parse_length(dimension.value) if dimension is not None else None
    if length is None or not length > 0:
        raise CalculationPreconditionError(MISSING_LENGTH_MESSAGE)
    return length


def _unit_label(material: Material) -> str:
    return material.unit or ""


def _default_result(material: Material, length: float, variables: dict[str, Any]) -> CalculationResult:
    pieces = default_pieces_per_bar(material.standard_length, length)
    return CalculationResult(
        candidate_id=candidate_key(material.id, None),
        pieces_per_bar=pieces,
        estimated_cost=cost_per_piece(material.cost_per_unit, pieces),
        selected_material=material,
        applied_formula=None,
        details=(
            f"Optimisation: {pieces} pièces par barre de {material.standard_length:g}{_unit_label(material)} "
            f"(marge {END_MARGIN:g}, trait de scie {SAW_KERF:g})"
        ),
        variables=variables,
    )


def _formula_result(
    material: Material,
    formula: Formula,
    variables: dict[str, Any],
) -> CalculationResult | None:
    """Evaluate one formula for one material. Returns None if the formula fails."""
    try:
        raw_yield = evaluate_yield(formula.formula, variables)
    except FormulaError as exc:
        logger.warning(
            "Formula %s (%s) failed for material %s: %s",
            formula.id,
            formula.name,
            material.id,
            exc,
        )
        return None

    pieces = clamp_pieces(raw_yield)
    return CalculationResult(
        candidate_id=candidate_key(material.id, formula.id),
        pieces_per_bar=pieces,
        estimated_cost=cost_per_piece(material.cost_per_unit, pieces),
        selected_material=material,
        applied_formula=formula,
        details=f"{formula.name}: {pieces} pièces par barre de {material.standard_length:g}{_unit_label(material)}",
        variables=variables,
    )


def rank_results(results: list[CalculationResult]) -> list[CalculationResult]:
    """Sort results: most pieces per bar first, then cheapest cost per piece."""
    return sorted(results, key=lambda r: (-r.pieces_per_bar, r.estimated_cost))


def compute_all(extraction: ExtractionResult, profile: ClientProfile) -> CalculationOutcome:
    """Compute and rank every candidate for an extraction against a profile.

    Every compatible material contributes its default geometric result plus
    one result per applicable formula. A failing formula only drops its own
    candidate.

    Raises:
        CalculationPreconditionError: If the piece length is not usable.
    """
    data = extraction.extracted_data
    length = piece_length(data)

    materials = filter_compatible_materials(data, profile.materials)
    base = extraction_bindings(data, length)

    results: list[CalculationResult] = []
    for material in materials:
        variables = material_bindings(base, material)

        for formula in profile.formulas:
            if not evaluate_condition(formula.condition, variables):
                continue
            result = _formula_result(material, formula, variables)
            if result is not None:
                results.append(result)

        results.append(_default_result(material, length, variables))

    ranked = rank_results(results)
    logger.info(
        "Computed %d candidates over %d materials for profile %s",
        len(ranked),
        len(materials),
        profile.id,
    )
    return CalculationOutcome(
        ranked=ranked,
        selected=ranked[0] if ranked else None,
        profile_used=profile.id,
    )
