from fastapi import APIRouter, Depends

from tourbook.dependencies.auth import get_current_user, require_admin
from tourbook.dependencies.services import get_user_service
from tourbook.routes.errors import to_http_exception
from tourbook.schemas.user import RoleUpdateRequest, User, UserResponse
from tourbook.services import UserService
from tourbook.services.exceptions import ServiceError

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def current_user(user: User = Depends(get_current_user)):
    return UserResponse(**user.model_dump())


@router.patch("/{uid}/role", response_model=UserResponse)
async def update_role(
    uid: str,
    req: RoleUpdateRequest,
    _: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    try:
        user = await service.update_role(uid, req.role)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return UserResponse(**user.model_dump())
