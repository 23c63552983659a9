"""Conexión a la base de datos con SQLAlchemy para el Account Service.

La conexión se modela como un objeto explícito (`Database`) que la aplicación
construye, inicializa al arrancar y libera al apagarse.
"""

import logging

from fastapi import Request
from sqlalchemy import create_engine, exc, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Clase base para los modelos declarativos
Base = declarative_base()


class Database:
    """Engine y fábrica de sesiones para una URL de base de datos."""

    def __init__(self, url: str):
        self.url = url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def init(self) -> None:
        """Crea las tablas si no existen."""
        from account_service import models  # noqa: F401  registra los modelos en Base

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables verified/created.")

    def session(self) -> Session:
        return self.SessionLocal()

    def ping(self) -> bool:
        """Returns True if the database answers a trivial query."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except exc.SQLAlchemyError as e:
            logger.error(f"Database ping failed: {e}", exc_info=True)
            return False

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database connections released.")


def get_db(request: Request):
    """Dependencia FastAPI: una sesión por petición, siempre cerrada al final."""
    db = request.app.state.database.session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
