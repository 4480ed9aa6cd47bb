from datetime import datetime
from typing import Optional

from fastapi import Depends, HTTPException, Request

from app.core.clock import local_now
from app.services.notifications import NotificationService
from app.services.payment_gateway import PaymentGateway
from app.services.payment_simulator import PaymentSimulator


# componentes criados no startup (app.main) e guardados em app.state

def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


def get_payment_simulator(request: Request) -> Optional[PaymentSimulator]:
    return getattr(request.app.state, "payment_simulator", None)


def require_mock_mode(gateway: PaymentGateway = Depends(get_payment_gateway)) -> PaymentGateway:
    if not gateway.is_mock:
        raise HTTPException(status_code=404, detail="Not Found")
    return gateway


def get_now() -> datetime:
    return local_now()
