from pydantic import BaseModel, Field
from typing import Literal, Optional

Role = Literal["user", "manager", "admin"]

class UserRegister(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(min_length=6)
    role: Role = "user"

class UserLogin(BaseModel):
    email_or_username: str
    password: str
