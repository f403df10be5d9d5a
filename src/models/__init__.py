"""Domain enums for the drawing analyzer.

Import them from here or from src.models.enums.
"""

from __future__ import annotations

from src.models.enums import (
    AnalysisStatus,
    FormulaCategory,
    GatewayDataType,
    WorkflowStep,
)

__all__ = [
    "AnalysisStatus",
    "FormulaCategory",
    "GatewayDataType",
    "WorkflowStep",
]
