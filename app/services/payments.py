import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.core.errors import ConflictError, InternalError, NotFoundError, ValidationError
from app.models.appointment import Appointment, AppointmentStatus
from app.models.payment import Payment, PaymentMethod, PaymentStatus
from app.models.user import User
from app.services.access import issue_access_credential
from app.services.payment_gateway import ChargeRequest, PaymentGateway


logger = logging.getLogger(__name__)


_GATEWAY_STATUS = {
    "approved": PaymentStatus.APPROVED,
    "rejected": PaymentStatus.REJECTED,
    "cancelled": PaymentStatus.CANCELLED,
}


def map_gateway_status(status: Optional[str]) -> PaymentStatus:
    """approved/rejected/cancelled do gateway; qualquer outro vira PENDING."""
    return _GATEWAY_STATUS.get((status or "").lower(), PaymentStatus.PENDING)


def get_payment_by_appointment(session: Session, appointment_id: int) -> Optional[Payment]:
    return session.exec(
        select(Payment).where(Payment.appointment_id == appointment_id)
    ).first()


def _payable_appointment(session: Session, user: User, appointment_id: int) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if not appointment or appointment.user_id != user.id:
        raise NotFoundError("Agendamento não encontrado")

    if appointment.status == AppointmentStatus.CANCELLED:
        raise ConflictError("Agendamento cancelado não pode ser pago")

    payment = get_payment_by_appointment(session, appointment.id)
    if payment and payment.status == PaymentStatus.APPROVED:
        raise ConflictError("Agendamento já foi pago")

    return appointment


def _upsert_pending_payment(
    session: Session,
    appointment: Appointment,
    method: PaymentMethod,
    external_id: str,
) -> Payment:
    payment = get_payment_by_appointment(session, appointment.id)
    if payment is None:
        payment = Payment(appointment_id=appointment.id, method=method, amount=appointment.total_amount)

    payment.method = method
    payment.amount = appointment.total_amount
    payment.status = PaymentStatus.PENDING
    payment.external_id = external_id
    payment.updated_at = datetime.utcnow()

    session.add(payment)
    session.commit()
    session.refresh(payment)
    return payment


def _charge_request(appointment: Appointment, user: User, description: Optional[str]) -> ChargeRequest:
    return ChargeRequest(
        appointment_id=appointment.id,
        amount=appointment.total_amount,
        payer_email=user.email,
        description=description or f"Banho La'vie Pet - agendamento #{appointment.id}",
    )


# =========================
# CRIAR PAGAMENTOS
# =========================
def create_pix_payment(
    session: Session,
    gateway: PaymentGateway,
    user: User,
    appointment_id: int,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    appointment = _payable_appointment(session, user, appointment_id)

    # falha no gateway propaga; o agendamento continua PENDING para nova tentativa
    charge = gateway.create_pix_charge(_charge_request(appointment, user, description))
    payment = _upsert_pending_payment(session, appointment, PaymentMethod.PIX, charge.id)

    logger.info("PIX %s criado para agendamento %s", charge.id, appointment.id)
    return {
        "payment_id": payment.id,
        "external_id": charge.id,
        "qr_code": charge.qr_code,
        "qr_code_base64": charge.qr_code_base64,
        "expiration_date": charge.expiration_date,
    }


def create_card_payment(
    session: Session,
    gateway: PaymentGateway,
    user: User,
    appointment_id: int,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    appointment = _payable_appointment(session, user, appointment_id)

    checkout = gateway.create_card_checkout(_charge_request(appointment, user, description))
    payment = _upsert_pending_payment(session, appointment, PaymentMethod.CARD, checkout.id)

    logger.info("Checkout %s criado para agendamento %s", checkout.id, appointment.id)
    return {
        "payment_id": payment.id,
        "preference_id": checkout.id,
        "init_point": checkout.init_point,
        "sandbox_init_point": checkout.sandbox_init_point,
    }


def get_payment_for_user(session: Session, user: User, appointment_id: int) -> Payment:
    appointment = session.get(Appointment, appointment_id)
    if not appointment or appointment.user_id != user.id:
        raise NotFoundError("Agendamento não encontrado")

    payment = get_payment_by_appointment(session, appointment.id)
    if not payment:
        raise NotFoundError("Pagamento não encontrado")
    return payment


# =========================
# ATUALIZAÇÃO DE STATUS
# =========================
def apply_payment_status(
    session: Session,
    payment: Payment,
    status: PaymentStatus,
    now: datetime,
) -> bool:
    """Grava o novo status. Na aprovação confirma o agendamento e emite a
    credencial de acesso no mesmo commit.

    Retorna True quando o agendamento acabou de ser confirmado.
    """
    appointment = session.get(Appointment, payment.appointment_id)
    if appointment is None:
        raise NotFoundError("Agendamento não encontrado")

    # aprovado é terminal
    if payment.status == PaymentStatus.APPROVED and status != PaymentStatus.APPROVED:
        logger.warning("Ignorando status %s para pagamento %s já aprovado", status.value, payment.id)
        return False

    became_confirmed = False
    payment.status = status
    payment.updated_at = datetime.utcnow()

    if status == PaymentStatus.APPROVED:
        payment.paid_at = payment.paid_at or now
        if appointment.status == AppointmentStatus.CANCELLED:
            # pago depois de cancelado: fica registrado, mas o slot não volta
            logger.warning("Pagamento %s aprovado para agendamento %s cancelado", payment.id, appointment.id)
        else:
            became_confirmed = appointment.status != AppointmentStatus.CONFIRMED
            appointment.status = AppointmentStatus.CONFIRMED
            if not appointment.access_token:
                appointment.access_token = issue_access_credential(appointment, now)
            appointment.updated_at = datetime.utcnow()
            session.add(appointment)

    session.add(payment)
    try:
        session.commit()
    except SQLAlchemyError:
        # pagamento e agendamento mudam juntos ou nenhum muda
        session.rollback()
        logger.exception("Erro ao gravar status %s do pagamento %s", status.value, payment.id)
        raise InternalError()

    session.refresh(payment)

    if became_confirmed:
        logger.info("Agendamento %s confirmado (pagamento %s)", appointment.id, payment.id)
    return became_confirmed


def settle_payment(
    session: Session,
    external_id: str,
    gateway_status: str,
    now: datetime,
) -> Optional[Payment]:
    """Aplica um status vindo do gateway pelo id externo.

    Retorna o pagamento quando o agendamento foi confirmado agora, senão None.
    """
    payment = session.exec(
        select(Payment).where(Payment.external_id == external_id)
    ).first()
    if not payment:
        raise NotFoundError("Pagamento não encontrado")

    confirmed = apply_payment_status(session, payment, map_gateway_status(gateway_status), now)
    return payment if confirmed else None


def process_gateway_webhook(
    session: Session,
    gateway: PaymentGateway,
    body: Dict[str, Any],
    now: datetime,
) -> Optional[Payment]:
    """Webhook no formato do Mercado Pago: ``{"type": "payment", "data": {"id": ...}}``.

    O status é sempre reconsultado no gateway, nunca lido do corpo.
    """
    if body.get("type") != "payment":
        logger.info("Webhook ignorado (type=%s)", body.get("type"))
        return None

    data = body.get("data")
    external_id = data.get("id") if isinstance(data, dict) else None
    if not external_id:
        raise ValidationError("Payment ID not found")

    gateway_payment = gateway.get_payment_status(str(external_id))
    logger.info("Status no gateway para %s: %s", external_id, gateway_payment.status)

    return settle_payment(session, str(external_id), gateway_payment.status, now)
