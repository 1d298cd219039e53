# backend/tests/conftest.py
import os
import tempfile

# Precisa vir antes de qualquer import da aplicação: config e logging leem o ambiente no import
_TMP_DIR = tempfile.mkdtemp(prefix="gerador_ean_tests_")
os.environ["GERADOR_EAN_DB_PATH"] = os.path.join(_TMP_DIR, "import.db")
os.environ["GERADOR_EAN_LOG_DIR"] = os.path.join(_TMP_DIR, "logs")

import pytest
from fastapi.testclient import TestClient

from gerador_ean import database
from gerador_ean.core import config

ADMIN_EMAIL = "admin@teste.com.br"
PASSWORD = "segredo123"


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "gerador_ean.db"
    monkeypatch.setattr(config, "DB_PATH", path)
    monkeypatch.setattr(config, "ADMIN_EMAIL", ADMIN_EMAIL)
    return path


@pytest.fixture
def db(db_path):
    """Conexão direta para testes de serviço (sem o lock das requisições)."""
    database.init_db()
    conn = database._connect()
    yield conn
    conn.close()


@pytest.fixture
def client(db_path):
    import main
    with TestClient(main.app) as test_client:
        yield test_client


def signup_and_login(client, email, password=PASSWORD):
    response = client.post("/api/v1/auth/signup", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    user_id = response.json()["data"]["id"]
    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return user_id, {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    _, headers = signup_and_login(client, ADMIN_EMAIL)
    return headers


@pytest.fixture
def user(client, admin_headers):
    """Usuário comum com 7 dias de acesso liberado. Retorna (id, headers)."""
    user_id, headers = signup_and_login(client, "loja@teste.com.br")
    response = client.post("/api/v1/admin/access", headers=admin_headers,
                           json={"user_id": user_id, "duration": "7d"})
    assert response.status_code == 200, response.text
    return user_id, headers


@pytest.fixture
def make_user(client):
    """Cadastra e loga um usuário; devolve (id, headers)."""
    def _make_user(email, password=PASSWORD):
        return signup_and_login(client, email, password)
    return _make_user
