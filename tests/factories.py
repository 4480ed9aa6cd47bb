from datetime import date, datetime, time, timedelta

from app.core.security import create_login_token, get_password_hash
from app.models.appointment import Appointment, AppointmentStatus
from app.models.location import Location
from app.models.payment import Payment, PaymentMethod, PaymentStatus
from app.models.pet import Pet, PetSize
from app.models.user import User


TODAY = date(2024, 6, 1)
NOW = datetime(2024, 6, 1, 7, 0)

# hash único para não pagar bcrypt em cada usuário
PASSWORD = "senha123"
PASSWORD_HASH = get_password_hash(PASSWORD)


# =========================
# FÁBRICAS
# =========================

def make_user(session, email="tutor@laviepet.com", name="Tutor Teste", phone="+5511988887777"):
    user = User(name=name, email=email, phone=phone, password_hash=PASSWORD_HASH)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_location(session, is_active=True, name="Tambaú - Unidade 01"):
    location = Location(
        name=name,
        address="Rua Principal, 123",
        city="Tambaú",
        state="SP",
        zip_code="13710-000",
        is_active=is_active,
    )
    session.add(location)
    session.commit()
    session.refresh(location)
    return location


def make_pet(session, user, name="Rex"):
    pet = Pet(name=name, breed="Labrador", size=PetSize.LARGE, user_id=user.id)
    session.add(pet)
    session.commit()
    session.refresh(pet)
    return pet


def make_appointment(
    session,
    user,
    pet,
    location,
    day=TODAY,
    start="09:00",
    status=AppointmentStatus.PENDING,
    access_token=None,
):
    start_time = datetime.combine(day, time.fromisoformat(start))
    appointment = Appointment(
        user_id=user.id,
        pet_id=pet.id,
        location_id=location.id,
        date=day,
        start_time=start_time,
        end_time=start_time + timedelta(minutes=30),
        status=status,
        total_amount=30.0,
        access_token=access_token,
    )
    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    return appointment


def make_payment(session, appointment, status=PaymentStatus.PENDING, external_id="mock_pix_test"):
    payment = Payment(
        appointment_id=appointment.id,
        method=PaymentMethod.PIX,
        amount=appointment.total_amount,
        status=status,
        external_id=external_id,
    )
    session.add(payment)
    session.commit()
    session.refresh(payment)
    return payment


def auth_headers(user):
    token = create_login_token(user)
    return {"Authorization": f"Bearer {token}"}
