from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlmodel import Session

from app.core.config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from app.database import get_session
from app.models.user import User


# =========================
# HASH DE SENHA
# =========================

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# =========================
# ASSINATURA JWT
# login e credencial de acesso usam a mesma chave; "kind" separa os dois
# =========================

LOGIN_TOKEN_KIND = "login"


def sign_claims(claims: Dict[str, Any], expires_at: Optional[datetime] = None) -> str:
    to_encode = dict(claims)
    if expires_at is not None:
        to_encode["exp"] = expires_at
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def read_claims(token: str, kind: str) -> Dict[str, Any]:
    """Confere assinatura, expiração e tipo do token. JWTError se inválido."""
    claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    if claims.get("kind") != kind:
        raise JWTError(f"token do tipo {claims.get('kind')!r}, esperado {kind!r}")
    return claims


# =========================
# TOKEN DE LOGIN
# =========================

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    expires_delta = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return sign_claims({**data, "kind": LOGIN_TOKEN_KIND}, datetime.utcnow() + expires_delta)


def create_login_token(user: User) -> str:
    # sub é o id: o token continua válido se o email mudar
    return create_access_token({"sub": str(user.id)})


# =========================
# USUÁRIO AUTENTICADO
# =========================

def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Não foi possível validar as credenciais",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        claims = read_claims(token, LOGIN_TOKEN_KIND)
        user_id = int(claims["sub"])
    except (JWTError, KeyError, ValueError):
        raise credentials_exception

    user = session.get(User, user_id)

    if user is None:
        raise credentials_exception

    return user
