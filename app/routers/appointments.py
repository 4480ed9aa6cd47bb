from datetime import date, datetime
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlmodel import Session

from app.database import get_session
from app.dependencies import get_notification_service, get_now, get_payment_simulator
from app.models.appointment import AppointmentCreate, AppointmentStatus
from app.models.user import User
from app.core.security import get_current_user
from app.services import booking
from app.services.notifications import NotificationService
from app.services.payment_simulator import PaymentSimulator
from app.services.payments import get_payment_by_appointment
from app.services.slots import get_available_slots


router = APIRouter(prefix="/appointments", tags=["appointments"])


# =========================
# HORÁRIOS DISPONÍVEIS (dia + unidade)
# GET /appointments/available-slots?day=2026-02-14&location_id=1
# =========================
@router.get("/available-slots")
def available_slots(
    day: date,
    location_id: int,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
) -> Dict:
    slots = get_available_slots(session, day, location_id, now)
    return {
        "day": day.isoformat(),
        "location_id": location_id,
        "slots": slots,
    }


# =========================
# CRIAR AGENDAMENTO
# =========================
@router.post("/", status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: AppointmentCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    appointment = booking.create_appointment(session, current_user.id, payload, now)
    return {"message": "Agendamento criado com sucesso", "appointment": appointment}


# =========================
# LISTAR / DETALHAR (só os próprios)
# =========================
@router.get("/")
def list_appointments(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return booking.list_user_appointments(session, current_user.id)


@router.get("/{appointment_id}")
def get_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    appointment = booking.get_user_appointment(session, current_user.id, appointment_id)
    payment = get_payment_by_appointment(session, appointment.id)
    return {"appointment": appointment, "payment": payment}


# =========================
# CANCELAR AGENDAMENTO
# =========================
@router.patch("/{appointment_id}/cancel")
def cancel_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    reason: str = "Cancelado pelo cliente",
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    notifier: NotificationService = Depends(get_notification_service),
    simulator: Optional[PaymentSimulator] = Depends(get_payment_simulator),
):
    current = booking.get_user_appointment(session, current_user.id, appointment_id)
    already_cancelled = current.status == AppointmentStatus.CANCELLED

    appointment = booking.cancel_appointment(session, current_user.id, appointment_id, now, reason)

    if not already_cancelled:
        payment = get_payment_by_appointment(session, appointment.id)
        if simulator and payment and payment.external_id:
            simulator.stop(payment.external_id)
        background_tasks.add_task(notifier.notify, appointment.id, "CANCELLATION")

    return appointment
