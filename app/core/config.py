import os
import warnings
from datetime import datetime, time
from pathlib import Path

from dotenv import load_dotenv

# .env na raiz do projeto
env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _parse_hhmm(value: str) -> time:
    return datetime.strptime(value, "%H:%M").time()


def _as_bool(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


# =========================
# BANCO / LOG
# =========================

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./laviepet.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


# =========================
# JWT
# =========================

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    warnings.warn(
        "SECRET_KEY não definido! Usando chave insegura de desenvolvimento", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "laviepet-dev-key-nao-usar-em-producao"

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))


# =========================
# FUNCIONAMENTO DAS UNIDADES
# =========================

# fuso usado para "hoje" e "agora" (naive, horário local da unidade)
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/Sao_Paulo")

# janela de funcionamento: única fonte de verdade para geração de slots
OPENING_TIME = _parse_hhmm(os.getenv("OPENING_TIME", "08:00"))
CLOSING_TIME = _parse_hhmm(os.getenv("CLOSING_TIME", "18:00"))

if CLOSING_TIME <= OPENING_TIME:
    raise ValueError("CLOSING_TIME deve ser maior que OPENING_TIME")

# duração fixa: o índice único só protege inícios iguais dentro da mesma grade
SLOT_MINUTES = 30

# acesso ao container liberado X minutos antes do início
ACCESS_EARLY_MINUTES = int(os.getenv("ACCESS_EARLY_MINUTES", "30"))

# cliente só cancela agendamento confirmado até X horas antes
CANCEL_MIN_HOURS_BEFORE = int(os.getenv("CANCEL_MIN_HOURS_BEFORE", "2"))

DEFAULT_SERVICE_PRICE = float(os.getenv("DEFAULT_SERVICE_PRICE", "30.0"))


# =========================
# PAGAMENTOS (Mercado Pago)
# =========================

MERCADOPAGO_ACCESS_TOKEN = os.getenv("MERCADOPAGO_ACCESS_TOKEN")
PAYMENT_MOCK_MODE = _as_bool(os.getenv("PAYMENT_MOCK_MODE")) or not MERCADOPAGO_ACCESS_TOKEN

APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:8000")


# =========================
# NOTIFICAÇÕES
# =========================

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER")

RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "La'vie Pet <noreply@laviepet.com>")
