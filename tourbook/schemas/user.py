from enum import Enum
from typing import Optional

from pydantic import BaseModel


class UserRole(str, Enum):
    CLIENT = "CLIENT"
    EMPLOYEE = "EMPLOYEE"
    ADMIN = "ADMIN"


STAFF_ROLES = frozenset({UserRole.EMPLOYEE, UserRole.ADMIN})


class User(BaseModel):
    uid: str
    email: str
    name: str
    phone: str = ""
    cpf: str = ""
    role: UserRole = UserRole.CLIENT

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserCreateRequest(BaseModel):
    email: str
    name: str
    phone: str = ""
    cpf: str = ""
    role: UserRole = UserRole.CLIENT


class RoleUpdateRequest(BaseModel):
    role: UserRole


class UserResponse(BaseModel):
    uid: str
    email: str
    name: str
    phone: Optional[str] = None
    role: UserRole
