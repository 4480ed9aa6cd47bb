from typing import Optional
from sqlmodel import SQLModel, Field


class Location(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    name: str
    address: str
    city: str
    state: str
    zip_code: str

    # containers simultâneos na unidade (hoje sempre 1)
    capacity: int = 1

    # só unidades ativas aceitam agendamento
    is_active: bool = Field(default=True, index=True)
