from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Literal, Optional

from .common import PartialUpdate


SystemRoleName = Literal["admin", "manager", "user", "viewer"]


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1, max_length=255, alias="fullName")
    department: str = Field(min_length=1, max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileUpdate(PartialUpdate):
    clearable = frozenset({"department", "phone"})

    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    department: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    role: Optional[SystemRoleName] = None  # admin only
    password: Optional[str] = Field(default=None, min_length=6)
