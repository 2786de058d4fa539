from pydantic import BaseModel
from typing import Optional

class ProfileUpdate(BaseModel):
    full_name: str = ""
    phone: str = ""
    bio: Optional[str] = None
    avatar_url: Optional[str] = None

class PasswordChange(BaseModel):
    current_password: str = ""
    new_password: str = ""
    password_confirm: str = ""

class ProfileOut(BaseModel):
    id: str
    email: str
    full_name: str
    phone: Optional[str] = ""
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
