"""Shared base model for documents exchanged with the data gateway.

Gateway documents use camelCase keys; Python code uses snake_case attributes.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """BaseModel that reads and writes camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    def to_document(self) -> dict:
        """Serialize to a JSON-safe dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
