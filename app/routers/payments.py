import logging
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlmodel import Session, SQLModel

from app.core.config import APP_BASE_URL
from app.database import get_session
from app.dependencies import (
    get_notification_service,
    get_now,
    get_payment_gateway,
    get_payment_simulator,
    require_mock_mode,
)
from app.models.payment import PaymentCreate
from app.models.user import User
from app.core.security import get_current_user
from app.services import payments
from app.services.notifications import NotificationService
from app.services.payment_gateway import MockPaymentGateway, PaymentGateway
from app.services.payment_simulator import PaymentSimulator


router = APIRouter(prefix="/payments", tags=["payments"])

logger = logging.getLogger(__name__)


class MockWebhookPayload(SQLModel):
    payment_id: str
    status: str = "approved"


class MockControlPayload(SQLModel):
    action: Literal["approve", "reject", "status"]
    appointment_id: Optional[int] = None


def _settle_and_notify(
    session: Session,
    external_id: str,
    gateway_status: str,
    now: datetime,
    background_tasks: BackgroundTasks,
    notifier: NotificationService,
) -> None:
    confirmed = payments.settle_payment(session, external_id, gateway_status, now)
    if confirmed is not None:
        background_tasks.add_task(notifier.notify, confirmed.appointment_id, "CONFIRMATION")


# =========================
# CRIAR PAGAMENTO PIX
# =========================
@router.post("/pix")
def create_pix_payment(
    payload: PaymentCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    simulator: Optional[PaymentSimulator] = Depends(get_payment_simulator),
):
    result = payments.create_pix_payment(
        session, gateway, current_user, payload.appointment_id, payload.description
    )

    # modo mock: aprovação automática depois de alguns segundos
    if simulator is not None:
        simulator.start(result["external_id"], payload.appointment_id)

    return result


# =========================
# CRIAR PAGAMENTO CARTÃO (checkout)
# =========================
@router.post("/card")
def create_card_payment(
    payload: PaymentCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return payments.create_card_payment(
        session, gateway, current_user, payload.appointment_id, payload.description
    )


# =========================
# STATUS DO PAGAMENTO DE UM AGENDAMENTO
# =========================
@router.get("/status/{appointment_id}")
def payment_status(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    payment = payments.get_payment_for_user(session, current_user, appointment_id)
    return {
        "payment_id": payment.id,
        "status": payment.status,
        "amount": payment.amount,
        "method": payment.method,
        "created_at": payment.created_at,
        "updated_at": payment.updated_at,
    }


# =========================
# WEBHOOK DO GATEWAY
# =========================
@router.post("/webhook")
def gateway_webhook(
    background_tasks: BackgroundTasks,
    body: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: NotificationService = Depends(get_notification_service),
    now: datetime = Depends(get_now),
):
    logger.info("Webhook recebido: %s", body)

    confirmed = payments.process_gateway_webhook(session, gateway, body, now)
    if confirmed is not None:
        background_tasks.add_task(notifier.notify, confirmed.appointment_id, "CONFIRMATION")

    return {"message": "Webhook processed successfully"}


@router.get("/webhook")
def webhook_health():
    return {"message": "Webhook endpoint is working", "timestamp": datetime.utcnow().isoformat()}


# =========================
# MODO MOCK (404 com gateway real)
# =========================
@router.post("/mock-webhook")
def mock_webhook(
    payload: MockWebhookPayload,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    gateway: MockPaymentGateway = Depends(require_mock_mode),
    notifier: NotificationService = Depends(get_notification_service),
    simulator: Optional[PaymentSimulator] = Depends(get_payment_simulator),
    now: datetime = Depends(get_now),
):
    if simulator is not None:
        simulator.stop(payload.payment_id)

    gateway.set_status(payload.payment_id, payload.status)
    _settle_and_notify(session, payload.payment_id, payload.status, now, background_tasks, notifier)

    return {"message": "Webhook processado com sucesso"}


@router.post("/mock-control")
def mock_control(
    payload: MockControlPayload,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: MockPaymentGateway = Depends(require_mock_mode),
    notifier: NotificationService = Depends(get_notification_service),
    simulator: Optional[PaymentSimulator] = Depends(get_payment_simulator),
    now: datetime = Depends(get_now),
):
    if payload.action == "status":
        active = simulator.active() if simulator is not None else []
        return {"message": "Status das simulações ativas", "active_simulations": active}

    if payload.appointment_id is None:
        raise HTTPException(status_code=400, detail="appointment_id é obrigatório")

    payment = payments.get_payment_for_user(session, current_user, payload.appointment_id)
    if not payment.external_id:
        raise HTTPException(status_code=409, detail="Pagamento sem cobrança no gateway")

    if simulator is not None:
        simulator.stop(payment.external_id)

    gateway_status = "approved" if payload.action == "approve" else "rejected"
    gateway.set_status(payment.external_id, gateway_status)
    _settle_and_notify(session, payment.external_id, gateway_status, now, background_tasks, notifier)

    label = "aprovado" if payload.action == "approve" else "rejeitado"
    return {"message": f"Pagamento {label} manualmente", "status": payment.status}


@router.get("/mock-checkout")
def mock_checkout(
    payment_id: str,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    gateway: MockPaymentGateway = Depends(require_mock_mode),
    notifier: NotificationService = Depends(get_notification_service),
    now: datetime = Depends(get_now),
):
    # checkout de cartão simulado: aprova e volta para o front
    gateway.set_status(payment_id, "approved")
    _settle_and_notify(session, payment_id, "approved", now, background_tasks, notifier)

    return RedirectResponse(
        url=f"{APP_BASE_URL}/dashboard/pagamento/sucesso?payment_id={payment_id}",
        status_code=303,
    )
