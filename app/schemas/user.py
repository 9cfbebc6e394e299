#app/schemas/user.py
from pydantic import BaseModel, EmailStr

class UserLite(BaseModel):
    """Author/reporter display info embedded in issues and comments."""
    id: str
    name: str
    role: str

class UserOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: str
    phone: str | None = None
    address: str | None = None
    is_active: bool = True
