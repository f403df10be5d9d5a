"""Pydantic schemas for client reference data: clients, materials, formulas, profiles.

Reference data is owned by a client profile and never mutated by the
analysis workflow.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import Field, model_validator

from src.models.enums import FormulaCategory
from src.schemas.base import CamelModel


class Client(CamelModel):
    """A customer whose drawings are analyzed."""

    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None


class Material(CamelModel):
    """A stock material (bar, tube, sheet) with its standard length and unit cost."""

    id: str
    type: str
    dimensions: str = ""
    standard_length: float = 0.0
    unit: str = ""
    cost_per_unit: Decimal = Decimal("0")
    name: str | None = None
    supplier: str | None = None
    reference: str | None = None

    @model_validator(mode="before")
    @classmethod
    def type_from_category(cls, data: Any) -> Any:
        """Raw-material records carry category + material instead of type."""
        if isinstance(data, dict) and not data.get("type"):
            parts = [str(data.get(k) or "").strip() for k in ("category", "material")]
            data = {**data, "type": " ".join(p for p in parts if p)}
        return data

    @property
    def display_name(self) -> str:
        return self.name or f"{self.type} {self.dimensions}".strip()


class Formula(CamelModel):
    """A profile formula: a yield expression guarded by an eligibility condition."""

    id: str
    name: str
    condition: str = ""
    formula: str
    description: str = ""
    category: FormulaCategory = FormulaCategory.OTHER
    unit: str | None = None


class ExtractableField(CamelModel):
    """A profile-specific field the AI is asked to extract."""

    name: str
    label: str = ""
    instruction: str | None = None
    unit: str | None = None


class ClientProfile(CamelModel):
    """A client's material catalog, formulas, and extra extraction fields."""

    id: str
    name: str
    description: str | None = None
    materials: list[Material] = Field(default_factory=list)
    formulas: list[Formula] = Field(default_factory=list)
    custom_fields: list[ExtractableField] = Field(default_factory=list)
