from pydantic import BaseModel, EmailStr, Field
from typing import Literal

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str
    mobile: str = Field(..., pattern=r"^\+?[1-9]\d{1,14}$")
    role: Literal["csr", "admin"] = "csr"

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserInDB(UserCreate):
    hashed_password: str
