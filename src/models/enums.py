"""Domain enums shared by schemas, the workflow controller, and the API.

All enums use str mixin for JSON serialization in gateway documents.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class AnalysisStatus(str, Enum):
    """Persisted checkpoint status of a saved analysis version."""

    DRAFT = "draft"
    ANALYZED = "analyzed"
    VALIDATED = "validated"
    COMPLETED = "completed"


class WorkflowStep(IntEnum):
    """The four screens of the analysis workflow."""

    CONFIGURE = 1
    REVIEW = 2
    CALCULATE = 3
    SAVE = 4


class FormulaCategory(str, Enum):
    """Grouping used when displaying profile formulas."""

    TIME = "time"
    COST = "cost"
    QUANTITY = "quantity"
    OPTIMIZATION = "optimization"
    OTHER = "other"


class GatewayDataType(str, Enum):
    """Document collections used on the data gateway."""

    ANALYSIS = "analysis"
    CLIENT = "client"
    CLIENT_PROFILE = "client-profile"
    RAW_MATERIAL = "raw-material"
