from pydantic import BaseModel
from typing import Optional

# Fields default to empty so the validators, not pydantic, report what is missing.

class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""

class RegisterRequest(BaseModel):
    email: str = ""
    password: str = ""
    password_confirm: str = ""
    full_name: str = ""
    phone: str = ""
    bio: Optional[str] = None
    avatar_url: Optional[str] = None  # URL reference only; no upload is stored

class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"

class RefreshRequest(BaseModel):
    refresh_token: str

class ForgotPasswordRequest(BaseModel):
    email: str = ""

class ResetPasswordRequest(BaseModel):
    token: str = ""
    password: str = ""
    password_confirm: str = ""
