from datetime import datetime, time, timedelta

import pytest
from jose import jwt

from app.core import config
from app.core.errors import ConflictError, NotFoundError
from app.core.security import create_login_token
from app.models.appointment import AppointmentStatus
from app.models.payment import PaymentStatus
from app.models.user import User
from app.services.access import (
    decode_access_credential,
    generate_access_for_user,
    issue_access_credential,
    validate_access,
)
from app.services.payments import apply_payment_status
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


def at(hhmm, seconds=0):
    return datetime.combine(TODAY, time.fromisoformat(hhmm)) + timedelta(seconds=seconds)


@pytest.fixture
def paid(session):
    """Agendamento confirmado e pago hoje, 10:00-10:30."""
    user = make_user(session)
    pet = make_pet(session, user)
    location = make_location(session)
    appointment = make_appointment(
        session, user, pet, location, start="10:00", status=AppointmentStatus.CONFIRMED
    )
    payment = make_payment(session, appointment, status=PaymentStatus.APPROVED)

    appointment.access_token = issue_access_credential(appointment, NOW)
    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    return appointment, payment, location


# =========================
# JANELA DE ACESSO
# =========================

@pytest.mark.parametrize(
    "now, valid",
    [
        (at("09:29"), False),
        (at("09:30"), True),
        (at("10:00"), True),
        (at("10:30"), True),
        (at("10:30", seconds=59), True),
        (at("10:31"), False),
    ],
)
def test_access_window_boundaries(session, paid, now, valid):
    appointment, _, location = paid

    decision = validate_access(session, appointment.access_token, location.id, now)

    assert decision.valid is valid


def test_granted_access_carries_summary(session, paid):
    appointment, _, location = paid

    decision = validate_access(session, appointment.access_token, location.id, at("09:45"))

    assert decision.message == "QR Code válido! Acesso liberado."
    assert decision.appointment["id"] == appointment.id
    assert decision.appointment["pet_name"] == "Rex"
    assert decision.appointment["pet_breed"] == "Labrador"
    assert decision.appointment["user_name"] == "Tutor Teste"
    assert decision.appointment["location_name"] == location.name


def test_outside_window_message_shows_window(session, paid):
    appointment, _, location = paid

    decision = validate_access(session, appointment.access_token, location.id, at("09:00"))

    assert decision.message == "Acesso permitido apenas entre 09:30 e 10:30"
    assert decision.appointment is None


def test_credential_can_be_read_more_than_once(session, paid):
    appointment, _, location = paid

    first = validate_access(session, appointment.access_token, location.id, at("09:40"))
    second = validate_access(session, appointment.access_token, location.id, at("09:41"))

    assert first.valid and second.valid


# =========================
# MOTIVOS DE RECUSA
# =========================

@pytest.mark.parametrize("credential", ["", "abc", "a.b.c"])
def test_malformed_credential(session, paid, credential):
    _, _, location = paid

    decision = validate_access(session, credential, location.id, at("10:00"))

    assert not decision.valid
    assert decision.message == "QR Code inválido ou corrompido"


def test_credential_signed_with_another_key(session, paid):
    appointment, _, location = paid
    claims = jwt.get_unverified_claims(appointment.access_token)
    forged = jwt.encode(claims, "outra-chave", algorithm=config.ALGORITHM)

    decision = validate_access(session, forged, location.id, at("10:00"))

    assert decision.message == "QR Code inválido ou corrompido"


def test_login_token_is_not_an_access_credential(session, paid):
    appointment, _, location = paid
    login_token = create_login_token(session.get(User, appointment.user_id))

    decision = validate_access(session, login_token, location.id, at("10:00"))

    assert decision.message == "QR Code inválido ou corrompido"


def test_wrong_location(session, paid):
    appointment, _, _ = paid
    other = make_location(session, name="Tambaú - Unidade 02")

    decision = validate_access(session, appointment.access_token, other.id, at("10:00"))

    assert decision.message == "QR Code não é válido para esta unidade"


def test_deleted_appointment(session, paid):
    appointment, payment, location = paid
    credential = appointment.access_token
    session.delete(payment)
    session.delete(appointment)
    session.commit()

    decision = validate_access(session, credential, location.id, at("10:00"))

    assert decision.message == "Agendamento não encontrado"


@pytest.mark.parametrize(
    "appointment_status, payment_status",
    [
        (AppointmentStatus.CANCELLED, PaymentStatus.APPROVED),
        (AppointmentStatus.PENDING, PaymentStatus.APPROVED),
        (AppointmentStatus.CONFIRMED, PaymentStatus.REJECTED),
    ],
)
def test_not_confirmed_or_not_paid(session, paid, appointment_status, payment_status):
    appointment, payment, location = paid
    appointment.status = appointment_status
    payment.status = payment_status
    session.add(appointment)
    session.add(payment)
    session.commit()

    decision = validate_access(session, appointment.access_token, location.id, at("10:00"))

    assert decision.message == "Agendamento não confirmado ou não pago"


def test_wrong_day(session, paid):
    appointment, _, location = paid

    decision = validate_access(session, appointment.access_token, location.id, at("10:00") + timedelta(days=1))

    assert decision.message == "QR Code não é válido para hoje"


def test_decode_rejects_token_without_ids():
    token = jwt.encode({"kind": "access"}, config.SECRET_KEY, algorithm=config.ALGORITHM)

    with pytest.raises(ValueError):
        decode_access_credential(token)


# =========================
# GERAÇÃO
# =========================

def test_generate_requires_approved_payment(session):
    user = make_user(session)
    appointment = make_appointment(session, user, make_pet(session, user), make_location(session))
    make_payment(session, appointment)

    with pytest.raises(ConflictError):
        generate_access_for_user(session, user.id, appointment.id, NOW)


def test_generate_refuses_cancelled_appointment_with_approved_payment(session):
    user = make_user(session)
    appointment = make_appointment(session, user, make_pet(session, user), make_location(session))
    payment = make_payment(session, appointment)
    appointment.status = AppointmentStatus.CANCELLED
    session.add(appointment)
    session.commit()
    # pagamento aprovado depois do cancelamento não reativa o agendamento
    apply_payment_status(session, payment, PaymentStatus.APPROVED, NOW)

    with pytest.raises(ConflictError):
        generate_access_for_user(session, user.id, appointment.id, NOW)

    session.refresh(appointment)
    assert appointment.access_token is None


def test_generate_hides_other_users_appointment(session, paid):
    appointment, _, _ = paid
    intruder = make_user(session, email="outro@laviepet.com")

    with pytest.raises(NotFoundError):
        generate_access_for_user(session, intruder.id, appointment.id, NOW)


def test_generate_reuses_stored_credential(session, paid):
    appointment, _, _ = paid

    result = generate_access_for_user(session, appointment.user_id, appointment.id, NOW)

    assert result["qr_code"] == appointment.access_token
    assert result["qr_code_image"].startswith("data:image/png;base64,")


def test_generate_issues_credential_when_missing(session, paid):
    appointment, _, _ = paid
    appointment.access_token = None
    session.add(appointment)
    session.commit()

    result = generate_access_for_user(session, appointment.user_id, appointment.id, NOW)

    session.refresh(appointment)
    assert appointment.access_token == result["qr_code"]
    assert decode_access_credential(result["qr_code"])["appointment_id"] == appointment.id


# =========================
# HTTP
# =========================

def test_generate_endpoint(client, session, paid):
    appointment, _, _ = paid
    owner = session.get(User, appointment.user_id)

    response = client.post("/qr-codes/generate", json={"appointment_id": appointment.id}, headers=auth_headers(owner))

    assert response.status_code == 200
    assert response.json()["qr_code"] == appointment.access_token


def test_validate_endpoint(client, clock, paid):
    appointment, _, location = paid
    body = {"qr_string": appointment.access_token, "location_id": location.id}

    clock.now = at("09:45")
    granted = client.post("/qr-codes/validate", json=body)
    clock.now = at("11:00")
    denied = client.post("/qr-codes/validate", json=body)

    assert granted.status_code == 200
    assert granted.json()["valid"] is True
    assert denied.status_code == 400
    assert denied.json() == {"valid": False, "message": "Acesso permitido apenas entre 09:30 e 10:30"}


def test_reader_endpoint_always_answers_200(client, clock, paid):
    appointment, _, location = paid
    clock.now = at("11:00")

    response = client.get("/qr-codes/validate", params={"qr": appointment.access_token, "location": location.id})

    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["timestamp"] == at("11:00").isoformat()


def test_access_credential_is_refused_as_login(client, paid):
    appointment, _, _ = paid

    response = client.get("/users/me", headers={"Authorization": f"Bearer {appointment.access_token}"})

    assert response.status_code == 401


def test_generate_endpoint_uses_owner(client, session, paid):
    appointment, _, _ = paid
    intruder = make_user(session, email="outro@laviepet.com")

    response = client.post("/qr-codes/generate", json={"appointment_id": appointment.id}, headers=auth_headers(intruder))

    assert response.status_code == 404
