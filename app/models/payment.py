from enum import Enum
from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class PaymentMethod(str, Enum):
    PIX = "PIX"
    CARD = "CARD"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # 1:1 com o agendamento
    appointment_id: int = Field(foreign_key="appointment.id", unique=True, index=True)

    method: PaymentMethod
    external_id: Optional[str] = Field(default=None, index=True)  # id no Mercado Pago

    amount: float

    status: PaymentStatus = Field(default=PaymentStatus.PENDING, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    paid_at: Optional[datetime] = None


class PaymentCreate(SQLModel):
    appointment_id: int
    description: Optional[str] = None
