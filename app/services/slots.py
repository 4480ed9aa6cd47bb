"""Cálculo de horários disponíveis (slots) por unidade e dia.

Um slot é o intervalo [início, início + SLOT_MINUTES) identificado pelo
horário de início "HH:MM". A janela de funcionamento vem de
``app.core.config``.
"""
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlmodel import Session, select

from app.core import config
from app.core.errors import InvalidDateError, LocationUnavailableError
from app.models.appointment import ACTIVE_STATUSES, Appointment
from app.models.location import Location


Interval = Tuple[datetime, datetime]


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Retorna True se [a_start, a_end) sobrepõe [b_start, b_end)."""
    return a_start < b_end and a_end > b_start


def generate_slots(
    opening: time = None,
    closing: time = None,
    slot_minutes: int = None,
) -> List[str]:
    """Todos os inícios possíveis dentro do expediente, em ordem crescente.

    Só entram slots que terminam até o fechamento.
    """
    opening = opening or config.OPENING_TIME
    closing = closing or config.CLOSING_TIME
    step = timedelta(minutes=slot_minutes or config.SLOT_MINUTES)

    # data qualquer, só para fazer a aritmética de horário
    anchor = date(2000, 1, 1)
    current = datetime.combine(anchor, opening)
    day_end = datetime.combine(anchor, closing)

    slots: List[str] = []
    while current + step <= day_end:
        slots.append(current.strftime("%H:%M"))
        current += step
    return slots


def slot_interval(day: date, slot: str, slot_minutes: int = None) -> Interval:
    start = datetime.combine(day, datetime.strptime(slot, "%H:%M").time())
    return start, start + timedelta(minutes=slot_minutes or config.SLOT_MINUTES)


def filter_available_slots(
    day: date,
    candidates: Iterable[str],
    busy: Iterable[Interval],
    now: datetime,
    slot_minutes: int = None,
) -> List[str]:
    """Remove slots que colidem com ``busy`` e, se ``day`` é hoje, os que já começaram."""
    busy = list(busy)
    available: List[str] = []

    for slot in candidates:
        start, end = slot_interval(day, slot, slot_minutes)

        if any(overlaps(start, end, b_start, b_end) for b_start, b_end in busy):
            continue

        # hoje: só horários estritamente depois de agora
        if day == now.date() and start <= now:
            continue

        available.append(slot)

    return available


def get_active_location(session: Session, location_id: int) -> Optional[Location]:
    location = session.get(Location, location_id)
    if not location or not location.is_active:
        return None
    return location


def list_busy_intervals(session: Session, location_id: int, day: date) -> List[Interval]:
    """Intervalos ocupados por agendamentos não cancelados da unidade no dia."""
    appointments = session.exec(
        select(Appointment).where(
            Appointment.location_id == location_id,
            Appointment.date == day,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
    ).all()
    return [(appt.start_time, appt.end_time) for appt in appointments]


def get_available_slots(
    session: Session,
    day: date,
    location_id: int,
    now: datetime,
) -> List[str]:
    if day < now.date():
        raise InvalidDateError()

    if not get_active_location(session, location_id):
        raise LocationUnavailableError()

    busy = list_busy_intervals(session, location_id, day)
    return filter_available_slots(day, generate_slots(), busy, now)
