from enum import Enum
from uuid import UUID
from pydantic import BaseModel


class Role(str, Enum):
    client = "client"
    designer = "designer"
    admin = "admin"


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenPayload(BaseModel):
    sub: str
    role: str
    profile_id: UUID
    is_admin: bool = False


class Principal(BaseModel):
    """The authenticated caller, as seen by authorization checks."""

    user_id: str
    role: Role
    profile_id: UUID

    @property
    def is_client(self) -> bool:
        return self.role == Role.client

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.designer, Role.admin)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin

    @classmethod
    def from_token(cls, payload: TokenPayload) -> "Principal":
        role = Role(payload.role)
        if role == Role.designer and payload.is_admin:
            role = Role.admin
        return cls(user_id=payload.sub, role=role, profile_id=payload.profile_id)
