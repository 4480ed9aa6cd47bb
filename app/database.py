from sqlmodel import SQLModel, Session, create_engine

from app.core.config import DATABASE_URL


connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)


def create_db_and_tables():
    # garante que todas as tabelas estão registradas no metadata
    from app.models import appointment, location, notification_log, payment, pet, user  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
