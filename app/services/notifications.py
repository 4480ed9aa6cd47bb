"""Notificações de agendamento por WhatsApp (Twilio) e email (Resend).

Envio best-effort: falhas são logadas e gravadas em ``NotificationLog``,
nunca propagadas para o fluxo que disparou a notificação.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import resend
from sqlmodel import Session
from twilio.rest import Client

from app.core import config
from app.models.appointment import Appointment
from app.models.location import Location
from app.models.notification_log import NotificationLog
from app.models.pet import Pet
from app.models.user import User


logger = logging.getLogger(__name__)


@dataclass
class NotificationData:
    appointment_id: int
    type: str
    recipient_name: str
    recipient_email: str
    recipient_phone: Optional[str]
    pet_name: str
    date: str
    start_time: str
    end_time: str
    location_name: str
    location_address: str
    qr_code: Optional[str] = None


def build_notification(session: Session, appointment_id: int, type: str = "CONFIRMATION") -> Optional[NotificationData]:
    appointment = session.get(Appointment, appointment_id)
    if not appointment:
        return None

    user = session.get(User, appointment.user_id)
    pet = session.get(Pet, appointment.pet_id)
    location = session.get(Location, appointment.location_id)
    if not user or not pet or not location:
        return None

    return NotificationData(
        appointment_id=appointment.id,
        type=type,
        recipient_name=user.name,
        recipient_email=user.email,
        recipient_phone=user.phone,
        pet_name=pet.name,
        date=appointment.date.strftime("%d/%m/%Y"),
        start_time=appointment.start_time.strftime("%H:%M"),
        end_time=appointment.end_time.strftime("%H:%M"),
        location_name=location.name,
        location_address=location.address,
        qr_code=appointment.access_token,
    )


# =========================
# MENSAGENS
# =========================

def build_whatsapp_message(data: NotificationData) -> str:
    if data.type == "CONFIRMATION":
        qr_line = "Seu QR Code de acesso está disponível no app." if data.qr_code else "O QR Code será enviado em breve."
        return (
            f"🐾 *La'vie Pet - Agendamento Confirmado!*\n\n"
            f"Olá {data.recipient_name}! O banho de {data.pet_name} está confirmado.\n\n"
            f"📅 {data.date}, {data.start_time} - {data.end_time}\n"
            f"📍 {data.location_name} ({data.location_address})\n\n"
            f"🎫 {qr_line}\n"
            f"O acesso é liberado {config.ACCESS_EARLY_MINUTES} min antes do horário."
        )

    if data.type == "REMINDER":
        return (
            f"🔔 *Lembrete - La'vie Pet*\n\n"
            f"Olá {data.recipient_name}! O banho de {data.pet_name} é hoje.\n\n"
            f"📅 {data.date} às {data.start_time}\n"
            f"📍 {data.location_name}\n\n"
            f"Não esqueça a toalha para secar seu pet!"
        )

    if data.type == "CANCELLATION":
        return (
            f"❌ *La'vie Pet - Agendamento Cancelado*\n\n"
            f"Olá {data.recipient_name}, o agendamento de {data.pet_name} foi cancelado:\n\n"
            f"📅 {data.date} às {data.start_time}\n"
            f"📍 {data.location_name}\n\n"
            f"Se não foi você, entre em contato. Para reagendar, acesse o app."
        )

    return f"La'vie Pet - Atualização sobre o agendamento de {data.pet_name}."


_EMAIL_SUBJECTS = {
    "CONFIRMATION": "🐾 Agendamento Confirmado - {pet}",
    "REMINDER": "🔔 Lembrete: banho do {pet} hoje!",
    "CANCELLATION": "❌ Agendamento Cancelado - {pet}",
}

_EMAIL_HEADLINES = {
    "CONFIRMATION": "Agendamento confirmado!",
    "REMINDER": "O banho é hoje!",
    "CANCELLATION": "Agendamento cancelado",
}


def build_email_content(data: NotificationData) -> Dict[str, str]:
    subject = _EMAIL_SUBJECTS.get(data.type, "La'vie Pet - Atualização do Agendamento").format(pet=data.pet_name)
    headline = _EMAIL_HEADLINES.get(data.type, "Atualização do agendamento")

    qr_section = ""
    if data.type == "CONFIRMATION" and data.qr_code:
        qr_section = (
            "<p><strong>QR Code de acesso:</strong> disponível na área do cliente. "
            f"O acesso é liberado {config.ACCESS_EARLY_MINUTES} minutos antes do horário.</p>"
        )

    html = f"""<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; color: #333;">
  <h1>🐾 La'vie Pet</h1>
  <h2>{headline}</h2>
  <p>Olá <strong>{data.recipient_name}</strong>!</p>
  <ul>
    <li><strong>Pet:</strong> {data.pet_name}</li>
    <li><strong>Data:</strong> {data.date}</li>
    <li><strong>Horário:</strong> {data.start_time} - {data.end_time}</li>
    <li><strong>Local:</strong> {data.location_name} - {data.location_address}</li>
  </ul>
  {qr_section}
  <p><small>Este é um email automático, não responda.</small></p>
</body>
</html>"""
    return {"subject": subject, "html": html}


# =========================
# ENVIO
# =========================

class NotificationService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        twilio_client: Optional[Client] = None,
        whatsapp_from: Optional[str] = None,
        resend_api_key: Optional[str] = None,
        email_from: str = None,
    ):
        self.session_factory = session_factory
        self.twilio_client = twilio_client
        self.whatsapp_from = whatsapp_from
        self.resend_api_key = resend_api_key
        self.email_from = email_from or config.EMAIL_FROM_ADDRESS

    def _log(self, data: NotificationData, channel: str, recipient: str, message: str, error: str = None) -> None:
        try:
            with self.session_factory() as session:
                session.add(
                    NotificationLog(
                        appointment_id=data.appointment_id,
                        channel=channel,
                        recipient=recipient,
                        message=message,
                        status="FAILED" if error else "SENT",
                        error=error,
                    )
                )
                session.commit()
        except Exception:
            logger.exception("Falha ao gravar NotificationLog (%s)", channel)

    def send_whatsapp(self, data: NotificationData) -> bool:
        if not self.twilio_client or not self.whatsapp_from or not data.recipient_phone:
            logger.info("[WHATSAPP] Twilio, telefone ou número WhatsApp não configurados")
            return False

        message = build_whatsapp_message(data)
        try:
            result = self.twilio_client.messages.create(
                from_=f"whatsapp:{self.whatsapp_from}",
                to=f"whatsapp:{data.recipient_phone}",
                body=message,
            )
        except Exception as exc:
            logger.error("[WHATSAPP] erro ao enviar para %s: %s", data.recipient_phone, exc)
            self._log(data, "WHATSAPP", data.recipient_phone, message, error=str(exc))
            return False

        logger.info("[WHATSAPP] enviado: %s", getattr(result, "sid", None))
        self._log(data, "WHATSAPP", data.recipient_phone, message)
        return True

    def send_email(self, data: NotificationData) -> bool:
        if not self.resend_api_key:
            logger.info("[EMAIL] RESEND_API_KEY não configurada")
            return False

        content = build_email_content(data)
        try:
            resend.api_key = self.resend_api_key
            response = resend.Emails.send(
                {
                    "from": self.email_from,
                    "to": [data.recipient_email],
                    "subject": content["subject"],
                    "html": content["html"],
                }
            )
        except Exception as exc:
            logger.error("[EMAIL] erro ao enviar para %s: %s", data.recipient_email, exc)
            self._log(data, "EMAIL", data.recipient_email, content["subject"], error=str(exc))
            return False

        logger.info("[EMAIL] enviado: %s", response)
        self._log(data, "EMAIL", data.recipient_email, content["subject"])
        return True

    def send(self, data: NotificationData) -> Dict[str, bool]:
        result = {
            "whatsapp": self.send_whatsapp(data),
            "email": self.send_email(data),
        }
        logger.info("Notificações %s do agendamento %s: %s", data.type, data.appointment_id, result)
        return result

    def notify(self, appointment_id: int, type: str = "CONFIRMATION") -> Dict[str, bool]:
        """Busca os dados do agendamento e envia. Pensado para BackgroundTasks."""
        try:
            with self.session_factory() as session:
                data = build_notification(session, appointment_id, type)
        except Exception:
            logger.exception("Erro ao montar notificação do agendamento %s", appointment_id)
            return {"whatsapp": False, "email": False}

        if data is None:
            logger.error("Notificação: agendamento %s ou dados relacionados não encontrados", appointment_id)
            return {"whatsapp": False, "email": False}

        return self.send(data)


def build_notification_service(session_factory: Callable[[], Session]) -> NotificationService:
    twilio_client = None
    if config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN:
        twilio_client = Client(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN)
    else:
        logger.info("WhatsApp desativado - credenciais Twilio não configuradas")

    return NotificationService(
        session_factory=session_factory,
        twilio_client=twilio_client,
        whatsapp_from=config.TWILIO_WHATSAPP_NUMBER,
        resend_api_key=config.RESEND_API_KEY,
    )
