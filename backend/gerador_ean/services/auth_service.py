# backend/gerador_ean/services/auth_service.py
import hashlib
import hmac
import logging
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from gerador_ean import database
from gerador_ean.core import config
from gerador_ean.core.logging_config import log_structured_event
from gerador_ean.exceptions import AuthenticationError, ValidationError

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 6
PBKDF2_ITERATIONS = 260_000
ROLE_ADMIN = "admin"


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("E-mail inválido.")
    return email


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Formato armazenado: pbkdf2_sha256$<iterações>$<salt>$<hash hex>."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def sign_up(email: str, password: str, db: sqlite3.Connection) -> Dict:
    """Cadastra um usuário. O e-mail de ADMIN_EMAIL já nasce admin."""
    email = normalize_email(email)
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"A senha deve ter pelo menos {PASSWORD_MIN_LENGTH} caracteres.")

    user_id = database.insert_user(email, hash_password(password), db)
    if config.ADMIN_EMAIL and email == config.ADMIN_EMAIL:
        database.add_role(user_id, ROLE_ADMIN, db)
        log_structured_event("auth", "admin_bootstrapped", {"user_id": user_id})

    log_structured_event("auth", "user_signed_up", {"user_id": user_id})
    return database.get_user_by_id(user_id, db)


def sign_in(email: str, password: str, db: sqlite3.Connection,
            now: Optional[datetime] = None) -> Dict:
    """Valida as credenciais e abre uma sessão com token bearer."""
    try:
        email = normalize_email(email)
    except ValidationError:
        raise AuthenticationError()

    user = database.get_user_by_email(email, db)
    if not user or not verify_password(password or "", user["password_hash"]):
        log_structured_event("auth", "sign_in_failed", {"email": email}, "WARNING")
        raise AuthenticationError()

    now = now or datetime.now(timezone.utc)
    purged = database.delete_expired_sessions(database.utcnow_iso(now), db)
    if purged:
        logger.debug(f"{purged} sessões expiradas removidas")

    expires_at = now + timedelta(hours=config.SESSION_TTL_HOURS)
    token = secrets.token_urlsafe(32)
    database.insert_session(token, user["id"], database.utcnow_iso(expires_at), db)

    log_structured_event("auth", "user_signed_in", {"user_id": user["id"]})
    return {"access_token": token, "token_type": "bearer",
            "expires_at": expires_at, "user_id": user["id"]}


def sign_out(token: str, db: sqlite3.Connection) -> bool:
    return database.delete_session(token, db)


def get_user_for_token(token: str, db: sqlite3.Connection,
                       now: Optional[datetime] = None) -> Optional[Dict]:
    if not token:
        return None
    return database.get_session_user(token, database.utcnow_iso(now), db)


def is_admin(user_id: int, db: sqlite3.Connection) -> bool:
    return database.has_role(user_id, ROLE_ADMIN, db)


def has_valid_access(user_id: int, db: sqlite3.Connection,
                     now: Optional[datetime] = None) -> bool:
    return database.has_valid_access(user_id, database.utcnow_iso(now), db)


def get_access_status(user: Dict, db: sqlite3.Connection,
                      now: Optional[datetime] = None) -> Dict:
    """Dados da tela inicial: papel de admin, acesso liberado e quando expira."""
    user_is_admin = is_admin(user["id"], db)
    expires_at = None if user_is_admin else database.get_access_expiration(user["id"], db)
    return {
        "user_id": user["id"],
        "email": user["email"],
        "is_admin": user_is_admin,
        "has_access": has_valid_access(user["id"], db, now),
        "access_expires_at": datetime.fromisoformat(expires_at) if expires_at else None,
    }
