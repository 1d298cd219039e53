# backend/gerador_ean/dependencies.py
import sqlite3
from typing import Dict, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gerador_ean import database
from gerador_ean.services import auth_service

bearer_scheme = HTTPBearer(auto_error=False)


def get_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> str:
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Faça login para continuar.")
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_token),
    db: sqlite3.Connection = Depends(database.get_db)
) -> Dict:
    user = auth_service.get_user_for_token(token, db)
    if not user:
        raise HTTPException(status_code=401, detail="Sessão inválida ou expirada.")
    return user


def require_access(
    user: Dict = Depends(get_current_user),
    db: sqlite3.Connection = Depends(database.get_db)
) -> Dict:
    """Usuário logado com acesso vigente (ou admin)."""
    if not auth_service.has_valid_access(user["id"], db):
        raise HTTPException(
            status_code=403,
            detail="Seu acesso expirou. Entre em contato com o administrador para renovar.")
    return user


def require_admin(
    user: Dict = Depends(get_current_user),
    db: sqlite3.Connection = Depends(database.get_db)
) -> Dict:
    if not auth_service.is_admin(user["id"], db):
        raise HTTPException(status_code=403, detail="Acesso negado. Apenas administradores.")
    return user


def visible_owner_id(
    user: Dict = Depends(require_access),
    db: sqlite3.Connection = Depends(database.get_db)
) -> Optional[int]:
    """Admins enxergam todas as bases (None); os demais, só as próprias."""
    return None if auth_service.is_admin(user["id"], db) else user["id"]
