"""Funciones de utilidad: hash de contraseñas, tokens de recuperación y entrega de tokens."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from jose import JWTError, jwt
from passlib.context import CryptContext

from account_service.config import (
    ALGORITHM,
    BCRYPT_ROUNDS,
    RESET_NOTIFY_URL,
    RESET_TOKEN_EXPIRE_MINUTES,
    SECRET_KEY,
)

logger = logging.getLogger(__name__)

RESET_TOKEN_TYPE = "password_reset"
MAX_PASSWORD_BYTES = 72

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)


def password_too_long(password: str) -> bool:
    """bcrypt solo usa los primeros 72 bytes; más allá dos contraseñas distintas darían el mismo hash."""
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifica una contraseña plana contra un hash almacenado."""
    if password_too_long(plain_password):
        # Nunca se guardó una contraseña así; evitar que el truncado la acepte
        pwd_context.dummy_verify()
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Genera el hash de una contraseña plana usando bcrypt (sal incluida)."""
    return pwd_context.hash(password)


def dummy_verify() -> None:
    """Consume el mismo tiempo que una verificación real cuando la cuenta no existe."""
    pwd_context.dummy_verify()


# --- Tokens de recuperación de contraseña ---

def _reset_signing_key(hashed_password: str) -> str:
    # La clave depende del hash actual: al cambiar la contraseña el token deja de servir
    return f"{SECRET_KEY}{hashed_password}"


def create_password_reset_token(username: str, hashed_password: str) -> str:
    """Genera un JWT de corta duración exclusivo para resetear la contraseña de `username`."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=RESET_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": username, "type": RESET_TOKEN_TYPE, "exp": expire}
    return jwt.encode(to_encode, _reset_signing_key(hashed_password), algorithm=ALGORITHM)


def read_reset_token_subject(token: str) -> Optional[str]:
    """Extrae el username del token SIN validar la firma (solo para buscar la cuenta)."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    subject = claims.get("sub")
    return subject if isinstance(subject, str) else None


def verify_reset_token(token: str, hashed_password: str) -> Optional[str]:
    """Valida firma, expiración y tipo del token. Devuelve el username o None."""
    try:
        payload = jwt.decode(token, _reset_signing_key(hashed_password), algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Reset token rejected: {e}")
        return None
    if payload.get("type") != RESET_TOKEN_TYPE:
        return None
    return payload.get("sub")


async def send_reset_token(username: str, phone: str, token: str) -> None:
    """
    Entrega el token de recuperación al webhook configurado (gateway SMS).
    Fire and forget: los fallos se registran pero no se propagan.
    """
    if not RESET_NOTIFY_URL:
        logger.warning("RESET_NOTIFY_URL is not configured. Skipping reset token delivery.")
        return None

    payload = {"username": username, "phone": phone, "token": token}
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(RESET_NOTIFY_URL, json=payload)
            if response.status_code in [200, 201, 202]:
                logger.info(f"Reset token delivered for user {username}.")
            else:
                logger.error(f"Reset token delivery failed ({response.status_code}) for user {username}.")
    except httpx.HTTPError as e:
        logger.error(f"Error connecting to reset notifier: {e}")
