from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from app.database import get_session
from app.models.location import Location


router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("/")
def list_active_locations(session: Session = Depends(get_session)):
    return session.exec(
        select(Location).where(Location.is_active == True).order_by(Location.name)  # noqa: E712
    ).all()
