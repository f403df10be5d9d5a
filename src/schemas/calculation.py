"""Pydantic schemas for the calculation engine.

Pure data classes, no gateway or AI access.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import Field

from src.schemas.base import CamelModel
from src.schemas.catalog import Formula, Material

DEFAULT_FORMULA_KEY = "default"


def candidate_key(material_id: str, formula_id: str | None) -> str:
    """Stable identifier of one (material, formula) candidate."""
    return f"{material_id}:{formula_id or DEFAULT_FORMULA_KEY}"


class CalculationResult(CamelModel):
    """Yield and cost of one (material, formula) candidate."""

    candidate_id: str
    pieces_per_bar: int = Field(ge=0)
    estimated_cost: Decimal               # per piece
    selected_material: Material
    applied_formula: Formula | None = None  # None = default geometric formula
    details: str = ""
    variables: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_default(self) -> bool:
        return self.applied_formula is None

    @property
    def cost_per_bar(self) -> Decimal:
        return self.estimated_cost * max(self.pieces_per_bar, 1)


class CalculationOutcome(CamelModel):
    """Ranked candidates plus the currently selected one."""

    ranked: list[CalculationResult] = Field(default_factory=list)
    selected: CalculationResult | None = None
    calculated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    profile_used: str | None = None

    def select(self, candidate_id: str) -> CalculationResult:
        """Manually override the selected candidate.

        Raises:
            KeyError: If no ranked candidate has this id.
        """
        for result in self.ranked:
            if result.candidate_id == candidate_id:
                self.selected = result
                return result
        raise KeyError(candidate_id)
