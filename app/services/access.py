"""Credencial de acesso ao container (QR Code) e validação na leitura.

A credencial é um JWT assinado com ``SECRET_KEY`` contendo os dados do
agendamento. A validação não tem efeitos colaterais: quem chama é
responsável pelo log de auditoria. A mesma credencial pode ser lida várias
vezes dentro da janela.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError
from sqlmodel import Session, select

from app.core import config
from app.core.security import read_claims, sign_claims
from app.core.errors import ConflictError, NotFoundError
from app.models.appointment import Appointment, AppointmentStatus
from app.models.location import Location
from app.models.payment import Payment, PaymentStatus
from app.models.pet import Pet
from app.models.user import User
from app.services.qrcode_image import render_qr_code_data_url


logger = logging.getLogger(__name__)

CREDENTIAL_KIND = "access"


@dataclass
class AccessDecision:
    valid: bool
    message: str
    appointment: Optional[Dict[str, Any]] = field(default=None)

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"valid": self.valid, "message": self.message}
        if self.appointment is not None:
            data["appointment"] = self.appointment
        return data


# =========================
# EMISSÃO
# =========================

def issue_access_credential(appointment: Appointment, now: datetime) -> str:
    claims = {
        "kind": CREDENTIAL_KIND,
        "appointment_id": appointment.id,
        "user_id": appointment.user_id,
        "pet_id": appointment.pet_id,
        "location_id": appointment.location_id,
        "date": appointment.date.isoformat(),
        "start_time": appointment.start_time.isoformat(),
        "end_time": appointment.end_time.isoformat(),
        "issued_at": now.isoformat(),
    }
    return sign_claims(claims)


def decode_access_credential(credential: str) -> Dict[str, Any]:
    """Decodifica e confere assinatura; ValueError se inválida."""
    try:
        claims = read_claims(credential, CREDENTIAL_KIND)
    except JWTError as exc:
        raise ValueError("credencial inválida") from exc

    for key in ("appointment_id", "location_id"):
        if not isinstance(claims.get(key), int):
            raise ValueError(f"campo {key} ausente")

    return claims


def generate_access_for_user(
    session: Session,
    user_id: int,
    appointment_id: int,
    now: datetime,
) -> Dict[str, Any]:
    appointment = session.get(Appointment, appointment_id)
    if not appointment or appointment.user_id != user_id:
        raise NotFoundError("Agendamento não encontrado")

    payment = session.exec(
        select(Payment).where(Payment.appointment_id == appointment.id)
    ).first()
    if not payment or payment.status != PaymentStatus.APPROVED:
        raise ConflictError("Agendamento deve estar pago para gerar QR Code")

    if appointment.status != AppointmentStatus.CONFIRMED:
        raise ConflictError("Agendamento deve estar confirmado para gerar QR Code")

    if not appointment.access_token:
        appointment.access_token = issue_access_credential(appointment, now)
        session.add(appointment)
        session.commit()
        session.refresh(appointment)

    return {
        "appointment_id": appointment.id,
        "qr_code": appointment.access_token,
        "qr_code_image": render_qr_code_data_url(appointment.access_token),
        "message": "QR Code gerado com sucesso",
    }


# =========================
# VALIDAÇÃO
# =========================

def _hhmm(value: datetime) -> str:
    return value.strftime("%H:%M")


def _summary(session: Session, appointment: Appointment) -> Dict[str, Any]:
    pet = session.get(Pet, appointment.pet_id)
    user = session.get(User, appointment.user_id)
    location = session.get(Location, appointment.location_id)
    return {
        "id": appointment.id,
        "pet_name": pet.name if pet else None,
        "pet_breed": pet.breed if pet else None,
        "user_name": user.name if user else None,
        "location_name": location.name if location else None,
        "start_time": appointment.start_time.isoformat(),
        "end_time": appointment.end_time.isoformat(),
    }


def validate_access(
    session: Session,
    credential: str,
    location_id: int,
    now: datetime,
) -> AccessDecision:
    try:
        claims = decode_access_credential(credential)
    except ValueError:
        return AccessDecision(False, "QR Code inválido ou corrompido")

    if claims["location_id"] != location_id:
        return AccessDecision(False, "QR Code não é válido para esta unidade")

    appointment = session.get(Appointment, claims["appointment_id"])
    if not appointment:
        return AccessDecision(False, "Agendamento não encontrado")

    payment = session.exec(
        select(Payment).where(Payment.appointment_id == appointment.id)
    ).first()
    if (
        appointment.status != AppointmentStatus.CONFIRMED
        or not payment
        or payment.status != PaymentStatus.APPROVED
    ):
        return AccessDecision(False, "Agendamento não confirmado ou não pago")

    if appointment.date != now.date():
        return AccessDecision(False, "QR Code não é válido para hoje")

    # precisão de minuto, limites inclusivos
    current = now.replace(second=0, microsecond=0)
    window_start = appointment.start_time - timedelta(minutes=config.ACCESS_EARLY_MINUTES)
    window_end = appointment.end_time

    if current < window_start or current > window_end:
        return AccessDecision(
            False,
            f"Acesso permitido apenas entre {_hhmm(window_start)} e {_hhmm(window_end)}",
        )

    return AccessDecision(True, "QR Code válido! Acesso liberado.", _summary(session, appointment))
