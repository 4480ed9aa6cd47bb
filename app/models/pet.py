from enum import Enum
from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class PetSize(str, Enum):
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


class PetBase(SQLModel):
    name: str = Field(min_length=2)
    breed: str = Field(min_length=2)
    size: PetSize
    notes: Optional[str] = None


class Pet(PetBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="user.id", index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)


class PetCreate(PetBase):
    pass


class PetUpdate(PetBase):
    pass
