"""Read access to client reference data: clients, client profiles, raw materials.

Reference data is maintained by separate screens; the analysis workflow
only reads it.
"""

from __future__ import annotations

import logging
from typing import TypeVar

from pydantic import ValidationError

from src.integrations.gateway.client import DataGatewayClient
from src.integrations.gateway.schemas import GatewayDocument
from src.models.enums import GatewayDataType
from src.schemas.base import CamelModel
from src.schemas.catalog import Client, ClientProfile, Material

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=CamelModel)


def _parse(model: type[ModelT], document: GatewayDocument) -> ModelT | None:
    try:
        return model.model_validate({**document.json_data, "id": document.id})
    except ValidationError as exc:
        logger.warning("Skipping malformed %s document %s: %s", model.__name__, document.id, exc)
        return None


class CatalogRepository:
    """Clients, profiles and raw materials stored on the data gateway."""

    def __init__(self, gateway: DataGatewayClient) -> None:
        self._gateway = gateway

    async def _get(self, model: type[ModelT], data_type: GatewayDataType, doc_id: str) -> ModelT | None:
        document = await self._gateway.get(data_type.value, doc_id)
        return _parse(model, document) if document is not None else None

    async def _list(self, model: type[ModelT], data_type: GatewayDataType) -> list[ModelT]:
        documents = await self._gateway.list_all(data_type.value)
        return [item for item in (_parse(model, d) for d in documents) if item is not None]

    async def get_profile(self, profile_id: str) -> ClientProfile | None:
        return await self._get(ClientProfile, GatewayDataType.CLIENT_PROFILE, profile_id)

    async def list_profiles(self) -> list[ClientProfile]:
        return await self._list(ClientProfile, GatewayDataType.CLIENT_PROFILE)

    async def get_client(self, client_id: str) -> Client | None:
        return await self._get(Client, GatewayDataType.CLIENT, client_id)

    async def list_clients(self) -> list[Client]:
        return await self._list(Client, GatewayDataType.CLIENT)

    async def list_materials(self) -> list[Material]:
        """Raw-material catalog shared by every profile."""
        return await self._list(Material, GatewayDataType.RAW_MATERIAL)
