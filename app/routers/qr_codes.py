import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session, SQLModel, Field

from app.database import get_session
from app.dependencies import get_now
from app.models.user import User
from app.core.security import get_current_user
from app.services.access import AccessDecision, generate_access_for_user, validate_access


router = APIRouter(prefix="/qr-codes", tags=["qr-codes"])

logger = logging.getLogger(__name__)


class GenerateQRCodePayload(SQLModel):
    appointment_id: int


class ValidateQRCodePayload(SQLModel):
    qr_string: str = Field(min_length=1)
    location_id: int


def _audit(location_id: int, decision: AccessDecision, now: datetime) -> None:
    logger.info(
        "[QR_CODE_VALIDATION] unidade=%s valido=%s msg=%s em=%s",
        location_id,
        decision.valid,
        decision.message,
        now.isoformat(),
    )


@router.post("/generate")
def generate_qr_code(
    payload: GenerateQRCodePayload,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    return generate_access_for_user(session, current_user.id, payload.appointment_id, now)


@router.post("/validate")
def validate_qr_code(
    payload: ValidateQRCodePayload,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    decision = validate_access(session, payload.qr_string, payload.location_id, now)
    _audit(payload.location_id, decision, now)

    if not decision.valid:
        return JSONResponse(status_code=400, content=decision.as_dict())
    return decision.as_dict()


# público, usado pelo leitor do container
@router.get("/validate")
def validate_qr_code_from_reader(
    qr: str,
    location: int,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    decision = validate_access(session, qr, location, now)
    _audit(location, decision, now)

    return {**decision.as_dict(), "timestamp": now.isoformat()}
