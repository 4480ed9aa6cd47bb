from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, func, select

from app.database import get_session
from app.models.appointment import Appointment
from app.models.pet import Pet, PetCreate, PetUpdate
from app.models.user import User
from app.core.security import get_current_user


router = APIRouter(prefix="/pets", tags=["pets"])


def _get_owned_pet(session: Session, pet_id: int, user: User) -> Pet:
    pet = session.get(Pet, pet_id)
    if not pet or pet.user_id != user.id:
        raise HTTPException(status_code=404, detail="Pet não encontrado")
    return pet


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_pet(
    payload: PetCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    pet = Pet(**payload.model_dump(), user_id=current_user.id)

    session.add(pet)
    session.commit()
    session.refresh(pet)

    return pet


@router.get("/")
def list_my_pets(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return session.exec(
        select(Pet).where(Pet.user_id == current_user.id).order_by(Pet.name)
    ).all()


@router.put("/{pet_id}")
def update_pet(
    pet_id: int,
    payload: PetUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    pet = _get_owned_pet(session, pet_id, current_user)

    pet.name = payload.name
    pet.breed = payload.breed
    pet.size = payload.size
    pet.notes = payload.notes

    session.add(pet)
    session.commit()
    session.refresh(pet)
    return pet


@router.delete("/{pet_id}")
def delete_pet(
    pet_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    pet = _get_owned_pet(session, pet_id, current_user)

    appointments_count = session.exec(
        select(func.count()).select_from(Appointment).where(Appointment.pet_id == pet.id)
    ).one()

    if appointments_count > 0:
        raise HTTPException(status_code=409, detail="Não é possível excluir um pet com agendamentos")

    session.delete(pet)
    session.commit()
    return {"message": "Pet excluído com sucesso"}
