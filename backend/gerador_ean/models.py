# backend/gerador_ean/models.py
from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List, Any
from datetime import datetime
from enum import Enum
import re


class ExportFormat(str, Enum):
    TXT = "txt"
    CSV = "csv"
    EXCEL = "excel"

# =============================================================================
# === AUTENTICAÇÃO ============================================================
# =============================================================================


class Credentials(BaseModel):
    """Modelo para cadastro e login."""
    email: str = Field(..., max_length=254,
                       json_schema_extra={"example": "loja@exemplo.com.br"})
    password: str = Field(..., min_length=1, max_length=128)


class SessionToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user_id: int


class AccessStatus(BaseModel):
    """Situação do acesso do usuário logado."""
    user_id: int
    email: str
    is_admin: bool
    has_access: bool
    access_expires_at: Optional[datetime] = Field(
        None, description="Vazio para admins ou para quem nunca teve acesso")

# =============================================================================
# === BASES EAN ===============================================================
# =============================================================================


class EanBaseCreate(BaseModel):
    """Modelo para criação de uma base nomeada."""
    name: str = Field(
        ...,
        description="Nome/Identificador da base",
        max_length=100,
        json_schema_extra={"example": "Loja X"}
    )
    cnpj_prefix: str = Field(
        ...,
        description="5 primeiros dígitos do CNPJ",
        json_schema_extra={"example": "42821"}
    )

    @field_validator('cnpj_prefix', mode='before')
    @classmethod
    def strip_non_digits(cls, v):
        """Remove qualquer caractere não numérico, como no campo do formulário."""
        if isinstance(v, str):
            return re.sub(r'[^\d]', '', v)
        return v


class EanBaseUpdate(BaseModel):
    """Modelo para atualização de uma base."""
    name: Optional[str] = Field(None, max_length=100)
    cnpj_prefix: Optional[str] = Field(None, description="5 primeiros dígitos do CNPJ")

    @field_validator('cnpj_prefix', mode='before')
    @classmethod
    def strip_non_digits(cls, v):
        if isinstance(v, str):
            return re.sub(r'[^\d]', '', v)
        return v


class EanBaseOut(BaseModel):
    """Modelo para resposta de base salva."""
    id: int
    user_id: int
    name: str
    cnpj_prefix: str
    last_base_code: str = Field(..., description="Próximo código base (12 dígitos)")
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

# =============================================================================
# === GERAÇÃO =================================================================
# =============================================================================


class GenerationRequest(BaseModel):
    quantity: int = Field(..., strict=True, description="Quantidade de EANs",
                          json_schema_extra={"example": 10})


class FreeGenerationRequest(GenerationRequest):
    """Geração avulsa a partir de um código base livre de 12 dígitos."""
    start_base: str = Field(..., json_schema_extra={"example": "789428210001"})


class EanCodeOut(BaseModel):
    code: str = Field(..., description="Código EAN-13 completo")
    base_code: str = Field(..., description="Corpo de 12 dígitos")


class GenerationResult(BaseModel):
    """Resultado de um lote gerado."""
    codes: List[EanCodeOut] = Field(default_factory=list)
    quantity: int
    start_base: str
    next_base: str = Field(..., description="Cursor calculado para o próximo lote")
    text: str = Field("", description="Códigos separados por quebra de linha")


class BaseGenerationResult(GenerationResult):
    base_id: int
    base_name: str
    last_base_code: str = Field(
        ..., description="Cursor efetivamente salvo no banco")
    cursor_saved: bool
    warning: Optional[str] = None


class ExportRequest(BaseModel):
    codes: List[str] = Field(..., min_length=1)
    base_name: str = Field("export", max_length=100)
    format: ExportFormat = ExportFormat.TXT


class CodeValidation(BaseModel):
    code: str
    valid: bool

# =============================================================================
# === ADMIN ===================================================================
# =============================================================================


class UserWithAccess(BaseModel):
    id: int
    email: str
    is_admin: bool
    expires_at: Optional[datetime] = None
    has_access: bool


class GrantAccessRequest(BaseModel):
    user_id: int
    duration: Optional[str] = Field(
        "7d", description="1h, 6h, 12h, 1d, 7d, 15d, 30d, 90d ou 365d. Valores desconhecidos valem 7d")


class APIResponse(BaseModel):
    """Modelo padrão para respostas da API."""
    success: bool = Field(...,
                          description="Indica se a requisição foi bem-sucedida")
    message: Optional[str] = Field(None, description="Mensagem descritiva")
    data: Optional[Any] = Field(None, description="Dados da resposta")
    error_code: Optional[str] = Field(
        None, description="Código do erro em caso de falha")

    @classmethod
    def success_response(cls, data: Any = None, message: str = "Operação realizada com sucesso"):
        return cls(success=True, message=message, data=data)

    @classmethod
    def error_response(cls, message: str, error_code: str = None):
        return cls(success=False, message=message, error_code=error_code)
