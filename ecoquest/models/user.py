"""User-related Pydantic models"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class Role(str, Enum):
    """The two roles the identity provider hands out"""
    STUDENT = "student"
    EDUCATOR = "educator"


class User(BaseModel):
    """Authenticated user as supplied by the identity provider (read-only)"""
    id: str
    email: str
    full_name: str = ""
    role: Role = Role.STUDENT
    avatar_url: Optional[str] = None

    @property
    def is_educator(self) -> bool:
        return self.role == Role.EDUCATOR
