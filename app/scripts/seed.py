from sqlmodel import Session, select

from app.core.security import get_password_hash
from app.database import create_db_and_tables, engine
from app.models.location import Location
from app.models.pet import Pet, PetSize
from app.models.user import User


TEST_USER_EMAIL = "teste@laviepet.com"
TEST_USER_PASSWORD = "123456"


def main():
    create_db_and_tables()

    with Session(engine) as session:
        # 1) usuário de teste
        user = session.exec(select(User).where(User.email == TEST_USER_EMAIL)).first()
        if not user:
            user = User(
                name="Usuário Teste",
                email=TEST_USER_EMAIL,
                phone="+5511999999999",
                password_hash=get_password_hash(TEST_USER_PASSWORD),
            )
            session.add(user)
            session.commit()
            session.refresh(user)

        # 2) unidade Tambaú
        location = session.exec(select(Location).where(Location.name == "Tambaú - Unidade 01")).first()
        if not location:
            location = Location(
                name="Tambaú - Unidade 01",
                address="Rua Principal, 123",
                city="Tambaú",
                state="SP",
                zip_code="13710-000",
                capacity=1,
                is_active=True,
            )
            session.add(location)

        # 3) pets de teste (se não existir nenhum)
        existing_pet = session.exec(select(Pet).where(Pet.user_id == user.id)).first()
        if not existing_pet:
            session.add_all(
                [
                    Pet(name="Rex", breed="Labrador", size=PetSize.LARGE, notes="Muito dócil e adora banho", user_id=user.id),
                    Pet(name="Mimi", breed="Poodle", size=PetSize.SMALL, notes="Pode ficar nervosa com barulhos", user_id=user.id),
                ]
            )

        session.commit()
        session.refresh(location)

        print("✅ Seed concluído!")
        print(f"Usuário: {user.email} / senha {TEST_USER_PASSWORD}")
        print(f"Unidade: {location.id} ({location.name})")
        print("Pets: Rex/Mimi (se não existiam)")


if __name__ == "__main__":
    main()
