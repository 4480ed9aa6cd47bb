import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from app.core.clock import local_now
from app.core.config import LOG_LEVEL
from app.core.errors import AppError
from app.database import create_db_and_tables, engine
from app.routers import appointments, auth, locations, notifications, payments, pets, qr_codes, users
from app.services.notifications import build_notification_service
from app.services.payment_gateway import build_payment_gateway
from app.services.payment_simulator import PaymentSimulator
from app.services.payments import settle_payment


logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="La'vie Pet API")
app.include_router(users.router)
app.include_router(auth.router)
app.include_router(pets.router)
app.include_router(locations.router)
app.include_router(appointments.router)
app.include_router(payments.router)
app.include_router(qr_codes.router)
app.include_router(notifications.router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Erro inesperado em %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Erro interno do servidor"})


def _session_factory() -> Session:
    return Session(engine)


@app.on_event("startup")
def on_startup():
    create_db_and_tables()

    app.state.payment_gateway = build_payment_gateway()
    app.state.notification_service = build_notification_service(_session_factory)
    app.state.payment_simulator = None

    if app.state.payment_gateway.is_mock:
        notifier = app.state.notification_service

        def settle(external_id: str, gateway_status: str) -> None:
            with _session_factory() as session:
                confirmed = settle_payment(session, external_id, gateway_status, local_now())
                appointment_id = confirmed.appointment_id if confirmed is not None else None
            if appointment_id is not None:
                notifier.notify(appointment_id, "CONFIRMATION")

        app.state.payment_simulator = PaymentSimulator(app.state.payment_gateway, settle)


@app.on_event("shutdown")
def on_shutdown():
    simulator = getattr(app.state, "payment_simulator", None)
    if simulator is not None:
        simulator.shutdown()


@app.get("/")
def root():
    return {"message": "API La'vie Pet funcionando 🚀"}
