"""Define el modelo de la tabla 'users' usando SQLAlchemy ORM."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from account_service.db import Base
from account_service.utils import get_password_hash


class User(Base):
    """
    Cuenta de usuario. El username es la única clave natural (índice único).
    La contraseña solo se puede escribir: el setter guarda el hash y nunca el texto plano.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    country = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    @property
    def password(self):
        raise AttributeError("password is write-only; only its hash is stored")

    @password.setter
    def password(self, plain_password: str):
        # Único punto donde se transforma un secreto: create y update pasan por aquí
        self.hashed_password = get_password_hash(plain_password)

    def __repr__(self):
        return f"<User username={self.username!r}>"
