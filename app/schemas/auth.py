# File: app/schemas/auth.py

from typing import Literal
from pydantic import BaseModel, EmailStr, Field
from app.schemas.user import UserOut

class RegisterIn(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    email: EmailStr
    password: str = Field(min_length=8, max_length=512)
    role: Literal["citizen", "authority"] = "citizen"
    phone: str | None = Field(default=None, max_length=30)
    address: str | None = Field(default=None, max_length=300)

class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=512)

class TokenOut(BaseModel):
    access_token: str
    token_type: str
    expires_in: int
    user: UserOut
