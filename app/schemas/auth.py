"""Pydantic schemas for authentication endpoints."""

from datetime import datetime

from pydantic import BaseModel


class RegisterRequest(BaseModel):
    email: str
    username: str
    password: str
    first_name: str | None = None
    last_name: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenRequest(BaseModel):
    token: str


class EmailRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class UpdateProfileRequest(BaseModel):
    first_name: str | None = None
    last_name: str | None = None


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    first_name: str | None = None
    last_name: str | None = None
    full_name: str
    status: str
    verified: bool
    verified_at: datetime | None = None
    last_login_at: datetime | None = None


class RegisterResponse(BaseModel):
    id: int
    email: str
    username: str


class LoginResponse(BaseModel):
    token: str
    expires_at: datetime
    user: UserResponse


class MessageResponse(BaseModel):
    message: str
