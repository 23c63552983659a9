"""Credential Store: persistencia de cuentas y verificación de contraseñas.

Es el único componente que ve contraseñas en texto plano o sus hashes. Hacia
fuera solo devuelve `UserResponse`, la proyección sin campos secretos.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from account_service import schemas, utils
from account_service.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from account_service.models import User

logger = logging.getLogger(__name__)

# Mensajes para el cliente cuando falla la base de datos (la causa solo va al log)
CREATE_FAILED = "Your account failed to be created!"
LOGIN_FAILED = "Login failed"
FETCH_FAILED = "Error fetching your details"
UPDATE_FAILED = "Could not update your details"
DELETE_FAILED = "Could not delete your account"
RESET_FAILED = "Password reset failed"


def _check_secret(secret: str) -> None:
    if utils.password_too_long(secret):
        raise ValidationError(f"Password must be at most {utils.MAX_PASSWORD_BYTES} bytes")


class CredentialStore:
    """Operaciones sobre la tabla `users` con una sesión de base de datos por petición."""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, username: str, failure_message: str = FETCH_FAILED) -> Optional[User]:
        try:
            return self.db.query(User).filter(User.username == username).first()
        except SQLAlchemyError as e:
            logger.error(f"DB error looking up user {username}: {e}", exc_info=True)
            raise StorageError(failure_message) from e

    def _commit(self, action: str, username: str, failure_message: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"DB error on {action} for user {username}: {e}", exc_info=True)
            raise StorageError(failure_message) from e

    def create(self, username: str, country: str, phone: str, secret: str) -> schemas.UserResponse:
        """Inserta la cuenta. La unicidad la garantiza el índice único, no una consulta previa."""
        if not all([username, country, phone, secret]):
            raise ValidationError()
        _check_secret(secret)

        new_user = User(username=username, country=country, phone=phone, password=secret)
        try:
            self.db.add(new_user)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Registration rejected, username already exists: {username}")
            raise ConflictError(username) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"DB error creating user {username}: {e}", exc_info=True)
            raise StorageError(CREATE_FAILED) from e

        self.db.refresh(new_user)
        logger.info(f"User {username} created.")
        return schemas.UserResponse.model_validate(new_user)

    def find_by_username(self, username: str) -> Optional[schemas.UserResponse]:
        user = self._get(username)
        if user is None:
            return None
        return schemas.UserResponse.model_validate(user)

    def verify(self, username: str, candidate_secret: str) -> bool:
        """
        True solo si `candidate_secret` coincide con la contraseña vigente.
        Una cuenta inexistente devuelve False, nunca una excepción.
        """
        user = self._get(username, LOGIN_FAILED)
        if user is None:
            utils.dummy_verify()
            return False
        return utils.verify_password(candidate_secret, user.hashed_password)

    def authenticate(self, username: str, candidate_secret: str) -> schemas.UserResponse:
        """
        Login con una sola lectura de la cuenta.
        NotFoundError si no existe, AuthenticationError si la contraseña no coincide.
        """
        user = self._get(username, LOGIN_FAILED)
        if user is None:
            utils.dummy_verify()
            raise NotFoundError(username, "Enter a correct username or password")
        if not utils.verify_password(candidate_secret, user.hashed_password):
            raise AuthenticationError()
        return schemas.UserResponse.model_validate(user)

    def update(
        self,
        username: str,
        country: Optional[str] = None,
        phone: Optional[str] = None,
        secret: Optional[str] = None,
    ) -> schemas.UserResponse:
        if secret:
            _check_secret(secret)

        user = self._get(username, UPDATE_FAILED)
        if user is None:
            raise NotFoundError(username)

        if country is not None:
            user.country = country
        if phone is not None:
            user.phone = phone
        if secret:
            user.password = secret

        self._commit("update", username, UPDATE_FAILED)
        self.db.refresh(user)
        logger.info(f"User {username} updated (password changed: {bool(secret)}).")
        return schemas.UserResponse.model_validate(user)

    def delete(self, username: str) -> bool:
        user = self._get(username, DELETE_FAILED)
        if user is None:
            return False
        self.db.delete(user)
        self._commit("delete", username, DELETE_FAILED)
        logger.info(f"User {username} deleted permanently.")
        return True

    # --- Recuperación de contraseña ---

    def issue_reset_token(self, username: str) -> Optional[str]:
        """Devuelve un token de un solo uso, o None si la cuenta no existe."""
        user = self._get(username, RESET_FAILED)
        if user is None:
            return None
        return utils.create_password_reset_token(user.username, user.hashed_password)

    def reset_secret(self, token: str, new_secret: str) -> schemas.UserResponse:
        _check_secret(new_secret)
        username = utils.read_reset_token_subject(token)
        if not username:
            raise ValidationError("Invalid or expired token")

        user = self._get(username, RESET_FAILED)
        if user is None:
            raise NotFoundError(username)

        if utils.verify_reset_token(token, user.hashed_password) != username:
            raise ValidationError("Invalid or expired token")

        user.password = new_secret
        self._commit("password reset", username, RESET_FAILED)
        self.db.refresh(user)
        logger.info(f"Password reset completed for user {username}.")
        return schemas.UserResponse.model_validate(user)
