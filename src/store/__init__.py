"""Repositories over the data gateway."""

from src.store.analyses import AnalysisRepository, latest_versions
from src.store.catalog import CatalogRepository

__all__ = ["AnalysisRepository", "CatalogRepository", "latest_versions"]
