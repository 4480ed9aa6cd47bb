from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class NotificationLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    appointment_id: Optional[int] = Field(default=None, foreign_key="appointment.id", index=True)

    channel: str  # WHATSAPP | EMAIL
    recipient: str
    message: str

    status: str = Field(index=True)  # SENT | FAILED
    error: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
