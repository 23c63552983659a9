"""
Configuraciones y fixtures compartidos para las pruebas automatizadas con pytest.
Cada prueba obtiene su propia base de datos SQLite en un directorio temporal.
"""

import os
import uuid

# Deben definirse antes de importar account_service (la config se lee al importar)
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET_KEY", "test_secret_key_for_pytest")

import pytest
from fastapi.testclient import TestClient

from account_service.db import Database
from account_service.main import create_app
from account_service.store import CredentialStore


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'accounts.db'}"


@pytest.fixture
def client(database_url):
    """Cliente HTTP contra una aplicación recién creada (ejecuta el lifespan)."""
    app = create_app(database_url)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def database(database_url):
    database = Database(database_url)
    database.init()
    yield database
    database.dispose()


@pytest.fixture
def store(database):
    db = database.session()
    try:
        yield CredentialStore(db)
    finally:
        db.close()


@pytest.fixture
def new_user() -> dict:
    """Payload de registro con un username único para cada prueba."""
    return {
        "username": f"user_{uuid.uuid4().hex[:8]}",
        "country": "NG",
        "phone": "+2348012345678",
        "password": "Str0ngPass!",
    }


@pytest.fixture
def registered_user(client, new_user) -> dict:
    r = client.post("/api/register", json=new_user)
    assert r.status_code == 201, f"Registro fallido: {r.status_code} {r.text}"
    return new_user
