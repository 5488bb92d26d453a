from typing import Optional, Union

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    wants_trainer: bool = False
    certification: Optional[str] = Field(default=None, max_length=200)
    specialties: Optional[Union[str, list[str]]] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    document_url: Optional[str] = None


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1, description="Email or username")
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=128)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: str
    first_name: str
    last_name: str
    display_name: str
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    is_active: bool
    created_at: Optional[str] = None


class AuthResponse(TokenPair):
    user: UserResponse


class QrCodeRequest(BaseModel):
    code: str = Field(min_length=1)
