from __future__ import annotations

import logging
from typing import List

from tourbook.schemas.catalog import CatalogService, CatalogServiceCreateRequest
from tourbook.services.repositories import CatalogRepository
from tourbook.services.store import DocumentStore

logger = logging.getLogger(__name__)


class CatalogServiceManager:
    """Bookable tourism services (tours, transfers, tickets)."""

    def __init__(self, store: DocumentStore) -> None:
        self._repository = CatalogRepository(store)

    async def create(self, request: CatalogServiceCreateRequest) -> CatalogService:
        service = await self._repository.create(request)
        logger.info("Catalog service %s (%s) created", service.id, service.name)
        return service

    async def find_active(self) -> List[CatalogService]:
        return await self._repository.list(active_only=True)

    async def find_one(self, service_id: str) -> CatalogService:
        return await self._repository.require(service_id)
