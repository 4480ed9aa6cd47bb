from enum import Enum
from typing import Optional
from datetime import date as Date, datetime
from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


# status que ocupam o slot
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

_ACTIVE_ONLY = text("status != 'CANCELLED'")


class Appointment(SQLModel, table=True):
    # no máximo um agendamento não cancelado por slot da unidade
    __table_args__ = (
        Index(
            "uq_appointment_active_slot",
            "location_id",
            "date",
            "start_time",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="user.id", index=True)
    pet_id: int = Field(foreign_key="pet.id", index=True)
    location_id: int = Field(foreign_key="location.id", index=True)

    date: Date = Field(index=True)
    start_time: datetime
    end_time: datetime  # sempre start_time + SLOT_MINUTES

    status: AppointmentStatus = Field(default=AppointmentStatus.PENDING, index=True)

    total_amount: float

    # credencial de acesso (QR Code), emitida na confirmação do pagamento
    access_token: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    canceled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None


class AppointmentCreate(SQLModel):
    pet_id: int
    location_id: int
    date: Date
    start_time: str  # "HH:MM"
    total_amount: Optional[float] = Field(default=None, ge=0)
