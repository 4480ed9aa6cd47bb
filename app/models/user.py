from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class UserBase(SQLModel):
    name: str = Field(min_length=2)
    email: str = Field(index=True, unique=True)
    phone: Optional[str] = None  # E.164, usado no WhatsApp


class User(UserBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    password_hash: str

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class UserCreate(UserBase):
    password: str = Field(min_length=6)


class UserUpdate(SQLModel):
    name: str = Field(min_length=2)
    email: str
    phone: Optional[str] = None


class UserRead(UserBase):
    id: int
    created_at: datetime
