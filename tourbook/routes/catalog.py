from typing import List

from fastapi import APIRouter, Depends, status

from tourbook.dependencies.auth import require_admin
from tourbook.dependencies.services import get_catalog_service
from tourbook.routes.errors import to_http_exception
from tourbook.schemas.catalog import CatalogService, CatalogServiceCreateRequest
from tourbook.schemas.user import User
from tourbook.services import CatalogServiceManager
from tourbook.services.exceptions import ServiceError

router = APIRouter()


@router.post("", response_model=CatalogService, status_code=status.HTTP_201_CREATED)
async def create_service(
    req: CatalogServiceCreateRequest,
    _: User = Depends(require_admin),
    manager: CatalogServiceManager = Depends(get_catalog_service),
):
    return await manager.create(req)


@router.get("", response_model=List[CatalogService])
async def list_services(manager: CatalogServiceManager = Depends(get_catalog_service)):
    return await manager.find_active()


@router.get("/{service_id}", response_model=CatalogService)
async def get_service(
    service_id: str,
    manager: CatalogServiceManager = Depends(get_catalog_service),
):
    try:
        return await manager.find_one(service_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
