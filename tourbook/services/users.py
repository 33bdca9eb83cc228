from __future__ import annotations

import logging

from tourbook.schemas.user import User, UserCreateRequest, UserRole
from tourbook.services.repositories import UserRepository
from tourbook.services.store import DocumentStore

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, store: DocumentStore) -> None:
        self._repository = UserRepository(store)

    async def register(self, request: UserCreateRequest, *, uid: str | None = None) -> User:
        user = await self._repository.create(request, uid=uid)
        logger.info("User %s registered as %s", user.uid, user.role.value)
        return user

    async def find_one(self, uid: str) -> User:
        return await self._repository.require(uid)

    async def update_role(self, uid: str, role: UserRole) -> User:
        await self._repository.update_role(uid, role)
        logger.info("User %s role changed to %s", uid, role.value)
        return await self._repository.require(uid)
