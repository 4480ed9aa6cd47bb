from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from app.database import get_session
from app.models.user import User, UserCreate, UserRead, UserUpdate
from app.core.security import get_current_user, get_password_hash

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=UserRead)
def create_user(user: UserCreate, session: Session = Depends(get_session)):
    email = user.email.strip().lower()

    existing_user = session.exec(
        select(User).where(User.email == email)
    ).first()

    if existing_user:
        raise HTTPException(status_code=409, detail="Usuário já existe com este email")

    hashed_password = get_password_hash(user.password)

    db_user = User(
        name=user.name,
        email=email,
        phone=user.phone,
        password_hash=hashed_password,
    )

    session.add(db_user)
    session.commit()
    session.refresh(db_user)

    return db_user


@router.get("/me", response_model=UserRead)
def read_profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserRead)
def update_profile(
    payload: UserUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    email = payload.email.strip().lower()

    # email não pode estar em uso por outro usuário
    existing_user = session.exec(
        select(User).where(User.email == email)
    ).first()

    if existing_user and existing_user.id != current_user.id:
        raise HTTPException(status_code=409, detail="Email já está em uso")

    current_user.name = payload.name
    current_user.email = email
    current_user.phone = payload.phone
    current_user.updated_at = datetime.utcnow()

    session.add(current_user)
    session.commit()
    session.refresh(current_user)
    return current_user
