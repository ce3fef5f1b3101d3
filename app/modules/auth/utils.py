from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from app.core.config import settings

SECRET_KEY = settings.APP_SECRET_STRING
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES


def create_context_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT context token with tenant information.

    La emisión real ocurre en el servicio de identidad; esta función existe
    para herramientas internas y tests.
    """
    to_encode = {k: str(v) if v is not None and not isinstance(v, str) else v for k, v in data.items()}
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "type": "context"})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decodifica y valida firma/expiración. Lanza jwt.PyJWTError si falla."""
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
