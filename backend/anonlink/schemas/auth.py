"""Register/login request and response schemas."""
from pydantic import Field

from anonlink.schemas.base import CamelModel


class RegisterRequest(CamelModel):
    username: str = Field(min_length=3, max_length=20)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    password: str = Field(min_length=6)


class LoginRequest(CamelModel):
    username: str
    password: str


class UserResponse(CamelModel):
    id: str
    username: str


class AuthResponse(CamelModel):
    user: UserResponse
    token: str
