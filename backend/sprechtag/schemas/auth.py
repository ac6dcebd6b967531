from typing import Optional

from pydantic import BaseModel

from ..models.user import Role
from .booking import CamelModel


class LoginIn(BaseModel):
    username: str
    password: str


class SessionUser(CamelModel):
    username: str
    role: Role
    teacher_id: Optional[int] = None


class TokenOut(CamelModel):
    success: bool = True
    message: str = "Login successful"
    token: str
    access_token: str
    token_type: str = "bearer"
    user: SessionUser


class AuthStatusOut(CamelModel):
    authenticated: bool
    user: Optional[SessionUser] = None


class PasswordChangeIn(CamelModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None
