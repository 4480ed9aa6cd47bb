import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.core import config
from app.core.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    SlotUnavailableError,
    ValidationError,
)
from app.models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentCreate,
    AppointmentStatus,
)
from app.models.payment import Payment, PaymentStatus
from app.models.pet import Pet
from app.services.slots import generate_slots, get_active_location, slot_interval


logger = logging.getLogger(__name__)


def parse_start_time(value: str) -> str:
    """Normaliza "H:MM"/"HH:MM" para "HH:MM"; ValidationError se inválido."""
    try:
        return datetime.strptime(value.strip(), "%H:%M").strftime("%H:%M")
    except (AttributeError, ValueError):
        raise ValidationError("Horário inválido, use o formato HH:MM")


def find_conflicting_appointment(
    session: Session,
    location_id: int,
    day: date,
    start: datetime,
    end: datetime,
) -> Optional[Appointment]:
    return session.exec(
        select(Appointment).where(
            Appointment.location_id == location_id,
            Appointment.date == day,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
    ).first()


# =========================
# CRIAR AGENDAMENTO
# =========================
def create_appointment(
    session: Session,
    user_id: int,
    payload: AppointmentCreate,
    now: datetime,
) -> Appointment:
    # pet precisa ser do usuário
    pet = session.get(Pet, payload.pet_id)
    if not pet or pet.user_id != user_id:
        raise NotFoundError("Pet não encontrado")

    if not get_active_location(session, payload.location_id):
        raise NotFoundError("Unidade não disponível")

    slot = parse_start_time(payload.start_time)

    # só horários da grade do expediente
    if slot not in generate_slots():
        raise ValidationError("Fora do horário de funcionamento")

    start_time, end_time = slot_interval(payload.date, slot)

    if start_time <= now:
        raise ValidationError("Horário já passou, escolha outro horário")

    # revalida imediatamente antes de gravar
    if find_conflicting_appointment(session, payload.location_id, payload.date, start_time, end_time):
        raise SlotUnavailableError()

    total_amount = payload.total_amount
    if total_amount is None:
        total_amount = config.DEFAULT_SERVICE_PRICE

    appointment = Appointment(
        user_id=user_id,
        pet_id=pet.id,
        location_id=payload.location_id,
        date=payload.date,
        start_time=start_time,
        end_time=end_time,
        total_amount=total_amount,
        status=AppointmentStatus.PENDING,
    )

    session.add(appointment)
    try:
        session.commit()
    except IntegrityError:
        # outra requisição gravou o mesmo slot entre a checagem e o insert
        session.rollback()
        logger.info(
            "Slot disputado: unidade=%s dia=%s horario=%s", payload.location_id, payload.date, slot
        )
        raise SlotUnavailableError()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Erro ao gravar agendamento (unidade=%s %s %s)", payload.location_id, payload.date, slot)
        raise InternalError()

    session.refresh(appointment)
    logger.info("Agendamento %s criado (unidade=%s %s %s)", appointment.id, appointment.location_id, appointment.date, slot)
    return appointment


# =========================
# CONSULTAS DO CLIENTE
# =========================
def list_user_appointments(session: Session, user_id: int) -> List[Appointment]:
    return session.exec(
        select(Appointment)
        .where(Appointment.user_id == user_id)
        .order_by(Appointment.start_time.desc())
    ).all()


def get_user_appointment(session: Session, user_id: int, appointment_id: int) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    # não revela agendamentos de outros usuários
    if not appointment or appointment.user_id != user_id:
        raise NotFoundError("Agendamento não encontrado")
    return appointment


# =========================
# CANCELAR AGENDAMENTO
# =========================
def cancel_appointment(
    session: Session,
    user_id: int,
    appointment_id: int,
    now: datetime,
    reason: str = "Cancelado pelo cliente",
) -> Appointment:
    appointment = get_user_appointment(session, user_id, appointment_id)

    if appointment.status == AppointmentStatus.CANCELLED:
        return appointment

    # confirmado (pago) só cancela com antecedência mínima
    if appointment.status == AppointmentStatus.CONFIRMED:
        if appointment.start_time - now < timedelta(hours=config.CANCEL_MIN_HOURS_BEFORE):
            raise ConflictError(
                f"Cancelamento permitido com pelo menos {config.CANCEL_MIN_HOURS_BEFORE}h de antecedência"
            )

    appointment.status = AppointmentStatus.CANCELLED
    appointment.canceled_at = now
    appointment.cancel_reason = reason
    appointment.updated_at = datetime.utcnow()

    payment = session.exec(
        select(Payment).where(Payment.appointment_id == appointment.id)
    ).first()
    if payment and payment.status == PaymentStatus.PENDING:
        payment.status = PaymentStatus.CANCELLED
        payment.updated_at = datetime.utcnow()
        session.add(payment)

    session.add(appointment)
    session.commit()
    session.refresh(appointment)

    logger.info("Agendamento %s cancelado", appointment.id)
    return appointment
