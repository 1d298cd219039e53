# backend/main.py

# --- Imports da Biblioteca Padrão ---
import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

# --- Imports de Terceiros ---
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

# --- Imports da Aplicação Local ---
from gerador_ean import models
from gerador_ean import database
from gerador_ean.core.config import API_V1_STR, PROJECT_NAME
from gerador_ean.core.logging_config import setup_logging, log_structured_event
from gerador_ean.dependencies import (
    get_current_user, get_token, require_access, require_admin, visible_owner_id
)
from gerador_ean.exceptions import (
    AuthenticationError, CursorConflictError, DuplicateRecordError,
    PersistenceError, RecordNotFoundError, ValidationError
)
from gerador_ean.services import (
    access_service, auth_service, base_service, ean_service, export_service
)
from gerador_ean.utils import validate_gtin

# --- Configuração de Logging ---
LOG_FILE = setup_logging()
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

# --- Ciclo de Vida da Aplicação ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gerencia eventos de inicialização e encerramento da API."""
    log_structured_event("app", "startup", {"version": APP_VERSION})
    database.init_db()
    log_structured_event("app", "database_initialized", {})
    yield
    log_structured_event("app", "shutdown", {})
    logger.info("Encerrando aplicação Gerador EAN-13 API.")


# --- Instância Principal do FastAPI ---
app = FastAPI(
    title=PROJECT_NAME,
    description="API para geração sequencial de códigos EAN-13 com controle de acesso por prazo.",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# --- Middlewares ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)

# --- Constantes da API ---
API_PREFIX = API_V1_STR

# =============================================================================
# === AUTENTICAÇÃO ============================================================
# =============================================================================


@app.post(
    f"{API_PREFIX}/auth/signup",
    response_model=models.APIResponse,
    summary="Cria uma nova conta",
    status_code=201,
    tags=["Autenticação"]
)
async def sign_up(credentials: models.Credentials, db: sqlite3.Connection = Depends(database.get_db)):
    """Cadastra um usuário. O acesso ao gerador precisa ser liberado por um admin."""
    user = auth_service.sign_up(credentials.email, credentials.password, db)
    return models.APIResponse.success_response(
        data={"id": user["id"], "email": user["email"]},
        message="Conta criada com sucesso"
    )


@app.post(
    f"{API_PREFIX}/auth/login",
    response_model=models.SessionToken,
    summary="Entra com e-mail e senha",
    tags=["Autenticação"]
)
async def sign_in(credentials: models.Credentials, db: sqlite3.Connection = Depends(database.get_db)):
    return auth_service.sign_in(credentials.email, credentials.password, db)


@app.post(
    f"{API_PREFIX}/auth/logout",
    response_model=models.APIResponse,
    summary="Encerra a sessão atual",
    tags=["Autenticação"]
)
async def sign_out(token: str = Depends(get_token), db: sqlite3.Connection = Depends(database.get_db)):
    auth_service.sign_out(token, db)
    return models.APIResponse.success_response(message="Sessão encerrada")


@app.get(
    f"{API_PREFIX}/auth/me",
    response_model=models.AccessStatus,
    summary="Situação do acesso do usuário logado",
    tags=["Autenticação"]
)
async def get_me(user: Dict = Depends(get_current_user), db: sqlite3.Connection = Depends(database.get_db)):
    """Informa se o usuário é admin, se tem acesso e quando ele expira."""
    return auth_service.get_access_status(user, db)

# =============================================================================
# === BASES EAN SALVAS ========================================================
# =============================================================================


@app.get(
    f"{API_PREFIX}/bases",
    response_model=List[models.EanBaseOut],
    summary="Lista as bases EAN salvas",
    tags=["Bases EAN"]
)
async def list_bases(
    owner_id: Optional[int] = Depends(visible_owner_id),
    db: sqlite3.Connection = Depends(database.get_db)
):
    return base_service.list_bases(owner_id, db)


@app.post(
    f"{API_PREFIX}/bases",
    response_model=models.EanBaseOut,
    summary="Cria uma base EAN nomeada",
    status_code=201,
    tags=["Bases EAN"]
)
async def create_base(
    payload: models.EanBaseCreate,
    user: Dict = Depends(require_access),
    db: sqlite3.Connection = Depends(database.get_db)
):
    """O cursor inicial é prefixo do país + 5 dígitos do CNPJ + sufixo 0001."""
    return base_service.create_base(user["id"], payload.name, payload.cnpj_prefix, db)


@app.get(
    f"{API_PREFIX}/bases/{{base_id}}",
    response_model=models.EanBaseOut,
    summary="Busca uma base pelo ID",
    tags=["Bases EAN"]
)
async def get_base(
    base_id: int,
    owner_id: Optional[int] = Depends(visible_owner_id),
    db: sqlite3.Connection = Depends(database.get_db)
):
    return base_service.get_visible_base(base_id, owner_id, db)


@app.patch(
    f"{API_PREFIX}/bases/{{base_id}}",
    response_model=models.EanBaseOut,
    summary="Renomeia a base ou troca o CNPJ",
    tags=["Bases EAN"]
)
async def update_base(
    base_id: int,
    payload: models.EanBaseUpdate,
    owner_id: Optional[int] = Depends(visible_owner_id),
    db: sqlite3.Connection = Depends(database.get_db)
):
    return base_service.update_base(base_id, owner_id, payload.model_dump(exclude_unset=True), db)


@app.delete(
    f"{API_PREFIX}/bases/{{base_id}}",
    response_model=models.APIResponse,
    summary="Remove uma base",
    tags=["Bases EAN"]
)
async def delete_base(
    base_id: int,
    owner_id: Optional[int] = Depends(visible_owner_id),
    db: sqlite3.Connection = Depends(database.get_db)
):
    base = base_service.delete_base(base_id, owner_id, db)
    return models.APIResponse.success_response(message=f'Base "{base["name"]}" removida')


@app.post(
    f"{API_PREFIX}/bases/{{base_id}}/generate",
    response_model=models.BaseGenerationResult,
    summary="Gera EANs sequenciais a partir de uma base salva",
    tags=["Geração"]
)
async def generate_for_base(
    base_id: int,
    payload: models.GenerationRequest,
    owner_id: Optional[int] = Depends(visible_owner_id),
    db: sqlite3.Connection = Depends(database.get_db)
):
    """
    Gera o lote e avança o último código salvo. Se a gravação falhar, os códigos
    ainda são devolvidos, com `cursor_saved=false` e um aviso.
    """
    result = base_service.generate_for_base(base_id, payload.quantity, owner_id, db)
    result["text"] = "\n".join(c["code"] for c in result["codes"])
    return result

# =============================================================================
# === GERAÇÃO AVULSA E UTILITÁRIOS ============================================
# =============================================================================


@app.post(
    f"{API_PREFIX}/ean/generate",
    response_model=models.GenerationResult,
    summary="Gera EANs a partir de um código base livre (nada é salvo)",
    tags=["Geração"]
)
async def generate_free(payload: models.FreeGenerationRequest, user: Dict = Depends(require_access)):
    batch = ean_service.generate_batch(payload.start_base, payload.quantity)
    return models.GenerationResult(
        codes=[c._asdict() for c in batch.codes],
        quantity=len(batch.codes),
        start_base=batch.start_base,
        next_base=batch.next_base,
        text=ean_service.codes_as_text(batch.codes)
    )


@app.get(
    f"{API_PREFIX}/ean/validate/{{code}}",
    response_model=models.CodeValidation,
    summary="Confere o dígito verificador de um GTIN",
    tags=["Utilitários"]
)
async def validate_code(code: str):
    return models.CodeValidation(code=code, valid=validate_gtin(code))


@app.post(
    f"{API_PREFIX}/ean/export",
    summary="Exporta códigos gerados como .txt, CSV ou Excel",
    tags=["Utilitários"]
)
async def export_codes(payload: models.ExportRequest, user: Dict = Depends(require_access)):
    """Gera um arquivo com os códigos, na ordem recebida, para download."""
    content, media_type, filename = export_service.build_export(
        payload.codes, payload.base_name, payload.format.value)
    log_structured_event("ean/export", "export_built", {
        "format": payload.format.value, **export_service.summarize(payload.codes)})

    headers = {'Content-Disposition': f'attachment; filename="{filename}"'}
    return StreamingResponse(iter([content]), media_type=media_type, headers=headers)

# =============================================================================
# === PAINEL ADMIN ============================================================
# =============================================================================


@app.get(
    f"{API_PREFIX}/admin/users",
    response_model=List[models.UserWithAccess],
    summary="Lista usuários e a situação do acesso",
    tags=["Admin"]
)
async def admin_list_users(admin: Dict = Depends(require_admin), db: sqlite3.Connection = Depends(database.get_db)):
    return access_service.list_users(db)


@app.post(
    f"{API_PREFIX}/admin/access",
    response_model=models.APIResponse,
    summary="Concede ou renova o acesso de um usuário",
    tags=["Admin"]
)
async def admin_grant_access(
    payload: models.GrantAccessRequest,
    admin: Dict = Depends(require_admin),
    db: sqlite3.Connection = Depends(database.get_db)
):
    expires_at = access_service.grant_access(payload.user_id, payload.duration, db)
    return models.APIResponse.success_response(
        data={"user_id": payload.user_id, "expires_at": expires_at.isoformat()},
        message="Acesso concedido com sucesso!"
    )


@app.delete(
    f"{API_PREFIX}/admin/access/{{user_id}}",
    response_model=models.APIResponse,
    summary="Revoga o acesso de um usuário",
    tags=["Admin"]
)
async def admin_revoke_access(
    user_id: int,
    admin: Dict = Depends(require_admin),
    db: sqlite3.Connection = Depends(database.get_db)
):
    access_service.revoke_access(user_id, db)
    return models.APIResponse.success_response(message="Acesso revogado!")


@app.post(
    f"{API_PREFIX}/admin/users/{{user_id}}/toggle-admin",
    response_model=models.APIResponse,
    summary="Promove ou rebaixa um usuário a admin",
    tags=["Admin"]
)
async def admin_toggle_admin(
    user_id: int,
    admin: Dict = Depends(require_admin),
    db: sqlite3.Connection = Depends(database.get_db)
):
    now_admin = access_service.toggle_admin(user_id, db)
    message = "Usuário promovido a admin" if now_admin else "Privilégios de admin removidos"
    return models.APIResponse.success_response(
        data={"user_id": user_id, "is_admin": now_admin}, message=message)


@app.get(f"{API_PREFIX}/health", summary="Verifica a saúde da API", tags=["Sistema"])
async def health_check():
    """Endpoint simples para monitoramento e health checks."""
    return {"status": "healthy", "timestamp": time.time()}

# =============================================================================
# === TRATAMENTO DE ERROS =====================================================
# =============================================================================

# Exceções de domínio -> (status HTTP, código de erro)
DOMAIN_ERRORS = {
    ValidationError: (422, "validation_error"),
    DuplicateRecordError: (409, "duplicate"),
    CursorConflictError: (409, "cursor_conflict"),
    RecordNotFoundError: (404, "not_found"),
    AuthenticationError: (401, "invalid_credentials"),
    PersistenceError: (503, "persistence_error"),
}


async def domain_exception_handler(request: Request, exc: Exception):
    status_code, error_code = DOMAIN_ERRORS[type(exc)]
    log_structured_event("app", "request_rejected", {
        "path": request.url.path, "error_code": error_code, "message": exc.message},
        "ERROR" if status_code >= 500 else "WARNING")
    return JSONResponse(
        status_code=status_code,
        content=models.APIResponse.error_response(exc.message, error_code).model_dump()
    )


for _exc_class in DOMAIN_ERRORS:
    app.add_exception_handler(_exc_class, domain_exception_handler)


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Captura exceções não tratadas para evitar que a aplicação quebre."""
    logger.error(
        f"Erro não tratado na rota {request.url}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False,
                 "message": "Ocorreu um erro interno no servidor."}
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
