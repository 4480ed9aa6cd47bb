import threading
from datetime import datetime, time, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine, select

from app.core.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    SlotUnavailableError,
    ValidationError,
)
from app.models.appointment import Appointment, AppointmentCreate, AppointmentStatus
from app.models.payment import PaymentStatus
from app.services import booking
from app.services.slots import get_available_slots
from tests.factories import (
    NOW,
    TODAY,
    auth_headers,
    make_appointment,
    make_location,
    make_payment,
    make_pet,
    make_user,
)


TOMORROW = TODAY + timedelta(days=1)


@pytest.fixture
def tutor(session):
    user = make_user(session)
    return user, make_pet(session, user), make_location(session)


def _payload(pet, location, start="09:00", day=TOMORROW, **extra):
    return AppointmentCreate(pet_id=pet.id, location_id=location.id, date=day, start_time=start, **extra)


def test_create_appointment(session, tutor):
    user, pet, location = tutor

    appointment = booking.create_appointment(session, user.id, _payload(pet, location), NOW)

    assert appointment.id is not None
    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.start_time == datetime.combine(TOMORROW, time(9, 0))
    assert appointment.end_time == datetime.combine(TOMORROW, time(9, 30))
    assert appointment.total_amount == 30.0
    assert appointment.access_token is None


def test_create_normalizes_start_time_and_keeps_amount(session, tutor):
    user, pet, location = tutor

    appointment = booking.create_appointment(
        session, user.id, _payload(pet, location, start=" 9:00 ", total_amount=45.0), NOW
    )

    assert appointment.start_time.strftime("%H:%M") == "09:00"
    assert appointment.total_amount == 45.0


def test_pet_of_another_user_is_not_found(session, tutor):
    _, pet, location = tutor
    intruder = make_user(session, email="outro@laviepet.com")

    with pytest.raises(NotFoundError):
        booking.create_appointment(session, intruder.id, _payload(pet, location), NOW)


def test_inactive_location_is_refused(session, tutor):
    user, pet, _ = tutor
    closed = make_location(session, is_active=False, name="Fechada")

    with pytest.raises(NotFoundError):
        booking.create_appointment(session, user.id, _payload(pet, closed), NOW)


@pytest.mark.parametrize("start", ["07:30", "18:00", "09:15", "25:00", "nove"])
def test_start_outside_grid_is_refused(session, tutor, start):
    user, pet, location = tutor

    with pytest.raises(ValidationError):
        booking.create_appointment(session, user.id, _payload(pet, location, start=start), NOW)


def test_slot_in_the_past_is_refused(session, tutor):
    user, pet, location = tutor
    now = datetime.combine(TODAY, time(9, 0))

    with pytest.raises(ValidationError):
        booking.create_appointment(session, user.id, _payload(pet, location, start="09:00", day=TODAY), now)


def test_taken_slot_is_refused(session, tutor):
    user, pet, location = tutor
    booking.create_appointment(session, user.id, _payload(pet, location), NOW)

    with pytest.raises(SlotUnavailableError):
        booking.create_appointment(session, user.id, _payload(pet, location), NOW)


def test_booking_consumes_exactly_one_slot(session, tutor):
    user, pet, location = tutor
    before = get_available_slots(session, TOMORROW, location.id, NOW)

    booking.create_appointment(session, user.id, _payload(pet, location, start="10:00"), NOW)
    after = get_available_slots(session, TOMORROW, location.id, NOW)

    assert set(before) - set(after) == {"10:00"}


def test_unique_index_catches_race(session, tutor, monkeypatch):
    user, pet, location = tutor
    booking.create_appointment(session, user.id, _payload(pet, location), NOW)

    # simula a checagem de outra requisição que ainda não viu o insert
    monkeypatch.setattr(booking, "find_conflicting_appointment", lambda *args, **kwargs: None)

    with pytest.raises(SlotUnavailableError):
        booking.create_appointment(session, user.id, _payload(pet, location), NOW)

    active = session.exec(
        select(Appointment).where(Appointment.status != AppointmentStatus.CANCELLED)
    ).all()
    assert len(active) == 1


def test_concurrent_reservations_only_one_wins(tmp_path, monkeypatch):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as setup:
        user = make_user(setup)
        payload = _payload(make_pet(setup, user), make_location(setup))
        user_id = user.id

    original = booking.find_conflicting_appointment
    barrier = threading.Barrier(2, timeout=10)

    def check_then_wait(*args, **kwargs):
        result = original(*args, **kwargs)
        # as duas requisições passam pela checagem antes de gravar
        barrier.wait()
        return result

    monkeypatch.setattr(booking, "find_conflicting_appointment", check_then_wait)

    results = []

    def attempt():
        with Session(engine) as session:
            try:
                booking.create_appointment(session, user_id, payload, NOW)
                results.append("ok")
            except SlotUnavailableError:
                results.append("conflict")

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    engine.dispose()
    assert sorted(results) == ["conflict", "ok"]


def test_cancelled_slot_can_be_booked_again(session, tutor):
    user, pet, location = tutor
    first = booking.create_appointment(session, user.id, _payload(pet, location), NOW)
    booking.cancel_appointment(session, user.id, first.id, NOW)

    second = booking.create_appointment(session, user.id, _payload(pet, location), NOW)

    assert second.id != first.id
    assert second.status == AppointmentStatus.PENDING


# =========================
# CANCELAMENTO
# =========================

def test_cancel_pending_appointment_cancels_pending_payment(session, tutor):
    user, pet, location = tutor
    appointment = make_appointment(session, user, pet, location, day=TOMORROW)
    payment = make_payment(session, appointment)

    cancelled = booking.cancel_appointment(session, user.id, appointment.id, NOW, "Mudança de planos")

    session.refresh(payment)
    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.canceled_at == NOW
    assert cancelled.cancel_reason == "Mudança de planos"
    assert payment.status == PaymentStatus.CANCELLED


def test_cancel_is_idempotent(session, tutor):
    user, pet, location = tutor
    appointment = make_appointment(session, user, pet, location, day=TOMORROW)

    booking.cancel_appointment(session, user.id, appointment.id, NOW)
    again = booking.cancel_appointment(session, user.id, appointment.id, NOW + timedelta(hours=1))

    assert again.status == AppointmentStatus.CANCELLED
    assert again.canceled_at == NOW


def test_confirmed_appointment_needs_notice(session, tutor):
    user, pet, location = tutor
    appointment = make_appointment(
        session, user, pet, location, day=TODAY, start="08:30", status=AppointmentStatus.CONFIRMED
    )

    with pytest.raises(ConflictError):
        booking.cancel_appointment(session, user.id, appointment.id, NOW)

    session.refresh(appointment)
    assert appointment.status == AppointmentStatus.CONFIRMED


def test_confirmed_appointment_with_notice_keeps_approved_payment(session, tutor):
    user, pet, location = tutor
    appointment = make_appointment(
        session, user, pet, location, day=TOMORROW, status=AppointmentStatus.CONFIRMED
    )
    payment = make_payment(session, appointment, status=PaymentStatus.APPROVED)

    booking.cancel_appointment(session, user.id, appointment.id, NOW)

    session.refresh(payment)
    assert payment.status == PaymentStatus.APPROVED


def test_cancel_of_another_users_appointment_is_not_found(session, tutor):
    user, pet, location = tutor
    appointment = make_appointment(session, user, pet, location, day=TOMORROW)
    intruder = make_user(session, email="outro@laviepet.com")

    with pytest.raises(NotFoundError):
        booking.cancel_appointment(session, intruder.id, appointment.id, NOW)


# =========================
# HTTP
# =========================

def test_create_appointment_endpoint(client, session, tutor):
    user, pet, location = tutor
    body = {"pet_id": pet.id, "location_id": location.id, "date": TOMORROW.isoformat(), "start_time": "09:00"}

    created = client.post("/appointments/", json=body, headers=auth_headers(user))
    taken = client.post("/appointments/", json=body, headers=auth_headers(user))

    assert created.status_code == 201
    assert created.json()["appointment"]["status"] == "PENDING"
    assert taken.status_code == 409
    assert taken.json()["detail"] == "Horário não disponível, escolha outro horário"


def test_create_appointment_requires_login(client, tutor):
    _, pet, location = tutor
    body = {"pet_id": pet.id, "location_id": location.id, "date": TOMORROW.isoformat(), "start_time": "09:00"}

    assert client.post("/appointments/", json=body).status_code == 401


def test_list_and_detail_only_show_own_appointments(client, session, tutor):
    user, pet, location = tutor
    mine = make_appointment(session, user, pet, location, day=TOMORROW)
    other_user = make_user(session, email="outro@laviepet.com")

    listed = client.get("/appointments/", headers=auth_headers(user))
    detail = client.get(f"/appointments/{mine.id}", headers=auth_headers(user))
    hidden = client.get(f"/appointments/{mine.id}", headers=auth_headers(other_user))

    assert [item["id"] for item in listed.json()] == [mine.id]
    assert detail.json()["appointment"]["id"] == mine.id
    assert detail.json()["payment"] is None
    assert hidden.status_code == 404


def test_cancel_endpoint_notifies_once(client, session, notifier, tutor):
    user, pet, location = tutor
    appointment = make_appointment(session, user, pet, location, day=TOMORROW)

    first = client.patch(f"/appointments/{appointment.id}/cancel", headers=auth_headers(user))
    second = client.patch(f"/appointments/{appointment.id}/cancel", headers=auth_headers(user))

    assert first.status_code == 200
    assert first.json()["status"] == "CANCELLED"
    assert second.status_code == 200
    assert notifier.calls == [(appointment.id, "CANCELLATION")]


def test_persistence_failure_is_internal_error(session, tutor, monkeypatch):
    user, pet, location = tutor

    def broken_commit():
        raise OperationalError("INSERT INTO appointment", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "commit", broken_commit)

    with pytest.raises(InternalError):
        booking.create_appointment(session, user.id, _payload(pet, location), NOW)
