from datetime import datetime, timedelta, timezone

import pytest

from gerador_ean import database
from gerador_ean.exceptions import (
    AuthenticationError, DuplicateRecordError, RecordNotFoundError, ValidationError
)
from gerador_ean.services import access_service, auth_service

NOW = datetime(2026, 1, 9, 12, 0, tzinfo=timezone.utc)


def test_password_hash_roundtrip():
    stored = auth_service.hash_password("segredo123")
    assert stored.startswith("pbkdf2_sha256$")
    assert auth_service.verify_password("segredo123", stored)
    assert not auth_service.verify_password("outra", stored)
    assert not auth_service.verify_password("segredo123", "lixo")


def test_sign_up_normalizes_email_and_rejects_duplicates(db):
    user = auth_service.sign_up("  Loja@Teste.com.BR ", "segredo123", db)
    assert user["email"] == "loja@teste.com.br"

    with pytest.raises(DuplicateRecordError):
        auth_service.sign_up("loja@teste.com.br", "segredo123", db)
    with pytest.raises(ValidationError):
        auth_service.sign_up("sem-arroba", "segredo123", db)
    with pytest.raises(ValidationError):
        auth_service.sign_up("curta@teste.com.br", "123", db)


def test_admin_email_is_bootstrapped(db):
    admin = auth_service.sign_up("admin@teste.com.br", "segredo123", db)
    user = auth_service.sign_up("loja@teste.com.br", "segredo123", db)

    assert auth_service.is_admin(admin["id"], db)
    assert not auth_service.is_admin(user["id"], db)


def test_sign_in_and_session_expiry(db):
    user = auth_service.sign_up("loja@teste.com.br", "segredo123", db)
    session = auth_service.sign_in("loja@teste.com.br", "segredo123", db, now=NOW)

    token = session["access_token"]
    assert auth_service.get_user_for_token(token, db, now=NOW)["id"] == user["id"]
    assert auth_service.get_user_for_token(token, db, now=NOW + timedelta(days=2)) is None

    assert auth_service.sign_out(token, db)
    assert auth_service.get_user_for_token(token, db, now=NOW) is None


def test_sign_in_purges_expired_sessions(db):
    auth_service.sign_up("loja@teste.com.br", "segredo123", db)
    old = auth_service.sign_in("loja@teste.com.br", "segredo123", db, now=NOW)
    current = auth_service.sign_in("loja@teste.com.br", "segredo123", db, now=NOW + timedelta(hours=1))

    later = NOW + timedelta(days=2)
    auth_service.sign_in("loja@teste.com.br", "segredo123", db, now=later)

    tokens = {row["token"] for row in db.execute("SELECT token FROM sessions")}
    assert old["access_token"] not in tokens
    assert current["access_token"] not in tokens
    assert len(tokens) == 1


def test_sign_in_rejects_bad_credentials(db):
    auth_service.sign_up("loja@teste.com.br", "segredo123", db)
    with pytest.raises(AuthenticationError):
        auth_service.sign_in("loja@teste.com.br", "errada", db)
    with pytest.raises(AuthenticationError):
        auth_service.sign_in("ninguem@teste.com.br", "segredo123", db)


def test_access_is_time_boxed(db):
    user = auth_service.sign_up("loja@teste.com.br", "segredo123", db)
    assert not auth_service.has_valid_access(user["id"], db, now=NOW)

    expires_at = access_service.grant_access(user["id"], "1d", db, now=NOW)
    assert expires_at == NOW + timedelta(days=1)
    assert auth_service.has_valid_access(user["id"], db, now=NOW + timedelta(hours=23))
    assert not auth_service.has_valid_access(user["id"], db, now=NOW + timedelta(days=1, seconds=1))

    status = auth_service.get_access_status(user, db, now=NOW + timedelta(days=3))
    assert status["has_access"] is False
    assert status["access_expires_at"] == expires_at


def test_grant_renews_and_unknown_duration_defaults_to_seven_days(db):
    user = auth_service.sign_up("loja@teste.com.br", "segredo123", db)
    access_service.grant_access(user["id"], "1h", db, now=NOW)
    expires_at = access_service.grant_access(user["id"], "2 semanas", db, now=NOW)

    assert expires_at == NOW + timedelta(days=7)
    assert database.get_access_expiration(user["id"], db) == database.utcnow_iso(expires_at)


def test_admins_always_have_access(db):
    admin = auth_service.sign_up("admin@teste.com.br", "segredo123", db)
    status = auth_service.get_access_status(admin, db, now=NOW)
    assert status["is_admin"] and status["has_access"]
    assert status["access_expires_at"] is None


def test_revoke_and_toggle_admin(db):
    user = auth_service.sign_up("loja@teste.com.br", "segredo123", db)
    access_service.grant_access(user["id"], "30d", db)

    assert access_service.revoke_access(user["id"], db)
    assert not auth_service.has_valid_access(user["id"], db)

    assert access_service.toggle_admin(user["id"], db) is True
    assert auth_service.has_valid_access(user["id"], db)
    assert access_service.toggle_admin(user["id"], db) is False
    assert not auth_service.has_valid_access(user["id"], db)


def test_list_users(db):
    admin = auth_service.sign_up("admin@teste.com.br", "segredo123", db)
    user = auth_service.sign_up("loja@teste.com.br", "segredo123", db)
    access_service.grant_access(user["id"], "7d", db, now=NOW)

    users = {u["email"]: u for u in access_service.list_users(db, now=NOW)}
    assert users["admin@teste.com.br"]["is_admin"] and users["admin@teste.com.br"]["has_access"]
    assert users["loja@teste.com.br"]["has_access"]
    assert users["loja@teste.com.br"]["expires_at"] == NOW + timedelta(days=7)
    assert admin["id"] != user["id"]


def test_admin_operations_on_unknown_user(db):
    with pytest.raises(RecordNotFoundError):
        access_service.grant_access(999, "7d", db)
    with pytest.raises(RecordNotFoundError):
        access_service.toggle_admin(999, db)
