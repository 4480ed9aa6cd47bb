"""Gateways de pagamento.

``MercadoPagoGateway`` fala com o SDK oficial; ``MockPaymentGateway`` guarda
as cobranças em memória e é usado em desenvolvimento/testes (modo mock).
Os dois expõem a mesma interface ``PaymentGateway``.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Dict, Optional

import mercadopago
from mercadopago.config import RequestOptions

from app.core import config
from app.core.errors import ExternalServiceError


logger = logging.getLogger(__name__)


@dataclass
class ChargeRequest:
    appointment_id: int
    amount: float
    payer_email: str
    description: str


@dataclass
class PixCharge:
    id: str
    qr_code: str
    qr_code_base64: str
    expiration_date: str


@dataclass
class CardCheckout:
    id: str
    init_point: str
    sandbox_init_point: str


@dataclass
class GatewayPayment:
    id: str
    status: str  # approved | rejected | cancelled | pending | ...
    status_detail: Optional[str] = None
    transaction_amount: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    is_mock = False

    @abstractmethod
    def create_pix_charge(self, request: ChargeRequest) -> PixCharge:
        ...

    @abstractmethod
    def create_card_checkout(self, request: ChargeRequest) -> CardCheckout:
        ...

    @abstractmethod
    def get_payment_status(self, external_id: str) -> GatewayPayment:
        ...


# =========================
# MERCADO PAGO
# =========================

class MercadoPagoGateway(PaymentGateway):
    def __init__(self, access_token: str, base_url: str = None):
        self.sdk = mercadopago.SDK(access_token)
        self.base_url = (base_url or config.APP_BASE_URL).rstrip("/")

    @staticmethod
    def _request_options() -> RequestOptions:
        return RequestOptions(custom_headers={"x-idempotency-key": str(uuid.uuid4())})

    @staticmethod
    def _check(result: Dict[str, Any], what: str) -> Dict[str, Any]:
        if result.get("status") not in (200, 201):
            message = result.get("response", {}).get("message", "Erro desconhecido")
            logger.error("Mercado Pago (%s) respondeu %s: %s", what, result.get("status"), message)
            raise ExternalServiceError(f"Erro ao processar pagamento ({what})")
        return result["response"]

    def create_pix_charge(self, request: ChargeRequest) -> PixCharge:
        payment_data = {
            "transaction_amount": request.amount,
            "description": request.description,
            "payment_method_id": "pix",
            "payer": {"email": request.payer_email},
            "external_reference": str(request.appointment_id),
            "notification_url": f"{self.base_url}/payments/webhook",
            "metadata": {"appointment_id": request.appointment_id},
        }
        try:
            result = self.sdk.payment().create(payment_data, self._request_options())
        except Exception as exc:
            logger.exception("Falha ao criar PIX no Mercado Pago")
            raise ExternalServiceError("Erro ao processar pagamento PIX") from exc

        response = self._check(result, "PIX")
        transaction_data = response.get("point_of_interaction", {}).get("transaction_data")
        if not transaction_data:
            raise ExternalServiceError("Erro ao gerar PIX")

        return PixCharge(
            id=str(response["id"]),
            qr_code=transaction_data.get("qr_code", ""),
            qr_code_base64=transaction_data.get("qr_code_base64", ""),
            expiration_date=response.get("date_of_expiration", ""),
        )

    def create_card_checkout(self, request: ChargeRequest) -> CardCheckout:
        preference_data = {
            "items": [
                {
                    "id": "lavie-pet-banho",
                    "title": request.description,
                    "unit_price": request.amount,
                    "quantity": 1,
                }
            ],
            "payer": {"email": request.payer_email},
            "payment_methods": {
                "excluded_payment_types": [{"id": "ticket"}, {"id": "bank_transfer"}, {"id": "atm"}],
                "installments": 12,
            },
            "back_urls": {
                "success": f"{self.base_url}/dashboard/pagamento/sucesso",
                "failure": f"{self.base_url}/dashboard/pagamento/erro",
                "pending": f"{self.base_url}/dashboard/pagamento/pendente",
            },
            "auto_return": "approved",
            "notification_url": f"{self.base_url}/payments/webhook",
            "external_reference": str(request.appointment_id),
            "metadata": {"appointment_id": request.appointment_id},
        }
        try:
            result = self.sdk.preference().create(preference_data)
        except Exception as exc:
            logger.exception("Falha ao criar preferência no Mercado Pago")
            raise ExternalServiceError("Erro ao processar pagamento com cartão") from exc

        response = self._check(result, "cartão")
        return CardCheckout(
            id=str(response["id"]),
            init_point=response.get("init_point", ""),
            sandbox_init_point=response.get("sandbox_init_point", ""),
        )

    def get_payment_status(self, external_id: str) -> GatewayPayment:
        try:
            result = self.sdk.payment().get(external_id)
        except Exception as exc:
            logger.exception("Falha ao consultar pagamento %s no Mercado Pago", external_id)
            raise ExternalServiceError("Erro ao verificar status do pagamento") from exc

        response = self._check(result, "status")
        return GatewayPayment(
            id=str(response["id"]),
            status=response.get("status", "pending"),
            status_detail=response.get("status_detail"),
            transaction_amount=response.get("transaction_amount"),
            metadata=response.get("metadata") or {},
        )


# =========================
# MOCK (desenvolvimento / testes)
# =========================

# PNG 1x1, só para o front ter o que exibir
_MOCK_PIX_IMAGE = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="


class MockPaymentGateway(PaymentGateway):
    """Cobranças em memória. O status muda só via ``set_status``."""

    is_mock = True

    def __init__(self, base_url: str = None):
        self.base_url = (base_url or config.APP_BASE_URL).rstrip("/")
        self._charges: Dict[str, GatewayPayment] = {}
        self._lock = Lock()

    def _register(self, prefix: str, request: ChargeRequest) -> str:
        charge_id = f"mock_{prefix}_{uuid.uuid4().hex[:12]}"
        with self._lock:
            self._charges[charge_id] = GatewayPayment(
                id=charge_id,
                status="pending",
                status_detail="pending",
                transaction_amount=request.amount,
                metadata={"appointment_id": request.appointment_id},
            )
        return charge_id

    def create_pix_charge(self, request: ChargeRequest) -> PixCharge:
        logger.info("[MOCK] PIX para agendamento %s (R$ %.2f)", request.appointment_id, request.amount)
        charge_id = self._register("pix", request)
        expiration = datetime.utcnow() + timedelta(minutes=30)
        return PixCharge(
            id=charge_id,
            qr_code=f"00020101021243650016COM.MERCADOLIVRE0201306{charge_id}5802BR5909LAVIE PET6009SAO PAULO",
            qr_code_base64=_MOCK_PIX_IMAGE,
            expiration_date=expiration.isoformat(),
        )

    def create_card_checkout(self, request: ChargeRequest) -> CardCheckout:
        logger.info("[MOCK] Checkout cartão para agendamento %s", request.appointment_id)
        charge_id = self._register("card", request)
        url = f"{self.base_url}/payments/mock-checkout?payment_id={charge_id}"
        return CardCheckout(id=charge_id, init_point=url, sandbox_init_point=f"{url}&sandbox=true")

    def get_payment_status(self, external_id: str) -> GatewayPayment:
        with self._lock:
            charge = self._charges.get(external_id)
            if charge is None:
                # cobrança desconhecida (ex.: servidor reiniciou)
                charge = GatewayPayment(id=external_id, status="pending", status_detail="pending")
                self._charges[external_id] = charge
            return charge

    def set_status(self, external_id: str, status: str) -> None:
        charge = self.get_payment_status(external_id)
        with self._lock:
            charge.status = status
            charge.status_detail = {
                "approved": "accredited",
                "rejected": "cc_rejected_other_reason",
            }.get(status, status)


def build_payment_gateway() -> PaymentGateway:
    if config.PAYMENT_MOCK_MODE:
        logger.warning("Pagamentos em modo MOCK (sem MERCADOPAGO_ACCESS_TOKEN ou PAYMENT_MOCK_MODE=true)")
        return MockPaymentGateway()
    return MercadoPagoGateway(config.MERCADOPAGO_ACCESS_TOKEN)
