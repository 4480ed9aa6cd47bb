from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session, SQLModel

from app.database import get_session
from app.dependencies import get_notification_service
from app.models.user import User
from app.core.security import get_current_user
from app.services import booking
from app.services.notifications import NotificationService


router = APIRouter(prefix="/notifications", tags=["notifications"])


class SendNotificationPayload(SQLModel):
    appointment_id: int
    type: Literal["CONFIRMATION", "REMINDER", "CANCELLATION"] = "CONFIRMATION"


@router.post("/send", status_code=202)
def send_notification(
    payload: SendNotificationPayload,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    notifier: NotificationService = Depends(get_notification_service),
):
    # só para agendamentos do próprio usuário
    appointment = booking.get_user_appointment(session, current_user.id, payload.appointment_id)

    background_tasks.add_task(notifier.notify, appointment.id, payload.type)

    return {"message": "Notificações enviadas com sucesso", "appointment_id": appointment.id}
