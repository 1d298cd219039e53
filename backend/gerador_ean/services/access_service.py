# backend/gerador_ean/services/access_service.py
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from gerador_ean import database
from gerador_ean.core.logging_config import log_structured_event
from gerador_ean.exceptions import RecordNotFoundError
from gerador_ean.services.auth_service import ROLE_ADMIN

logger = logging.getLogger(__name__)

ACCESS_DURATIONS = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "12h": timedelta(hours=12),
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "15d": timedelta(days=15),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "365d": timedelta(days=365),
}
DEFAULT_DURATION = "7d"


def get_duration(duration: Optional[str]) -> timedelta:
    """Durações desconhecidas caem no padrão de 7 dias."""
    return ACCESS_DURATIONS.get(duration or DEFAULT_DURATION, ACCESS_DURATIONS[DEFAULT_DURATION])


def _ensure_user(user_id: int, db: sqlite3.Connection) -> Dict:
    user = database.get_user_by_id(user_id, db)
    if not user:
        raise RecordNotFoundError("Usuário não encontrado.")
    return user


def list_users(db: sqlite3.Connection, now: Optional[datetime] = None) -> List[Dict]:
    now = now or datetime.now(timezone.utc)
    users = []
    for row in database.list_users_with_access(db):
        expires_at = datetime.fromisoformat(row["expires_at"]) if row["expires_at"] else None
        is_admin = bool(row["is_admin"])
        users.append({
            "id": row["id"],
            "email": row["email"],
            "is_admin": is_admin,
            "expires_at": expires_at,
            "has_access": is_admin or (expires_at is not None and expires_at > now),
        })
    return users


def grant_access(user_id: int, duration: Optional[str], db: sqlite3.Connection,
                 now: Optional[datetime] = None) -> datetime:
    """Concede (ou renova) o acesso a partir de agora. Retorna a nova expiração."""
    _ensure_user(user_id, db)
    now = now or datetime.now(timezone.utc)
    expires_at = now + get_duration(duration)
    database.upsert_access(user_id, database.utcnow_iso(expires_at), db)
    log_structured_event("admin", "access_granted", {
        "user_id": user_id, "duration": duration, "expires_at": expires_at.isoformat()})
    return expires_at


def revoke_access(user_id: int, db: sqlite3.Connection) -> bool:
    _ensure_user(user_id, db)
    revoked = database.delete_access(user_id, db)
    log_structured_event("admin", "access_revoked", {"user_id": user_id, "had_access": revoked})
    return revoked


def toggle_admin(user_id: int, db: sqlite3.Connection) -> bool:
    """Promove ou rebaixa o usuário. Retorna se ele é admin depois da troca."""
    _ensure_user(user_id, db)
    if database.has_role(user_id, ROLE_ADMIN, db):
        database.remove_role(user_id, ROLE_ADMIN, db)
        now_admin = False
    else:
        database.add_role(user_id, ROLE_ADMIN, db)
        now_admin = True
    log_structured_event("admin", "admin_toggled", {"user_id": user_id, "is_admin": now_admin})
    return now_admin
