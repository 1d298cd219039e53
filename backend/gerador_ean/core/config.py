# backend/gerador_ean/core/config.py
import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Configuração de logging
logger = logging.getLogger(__name__)

# Definição de Caminhos Base
BACKEND_DIR = Path(__file__).resolve().parent.parent.parent

# Carrega o arquivo .env
env_path = BACKEND_DIR / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)
    logger.info(f"Arquivo .env carregado: {env_path}")
else:
    logger.warning(f"Arquivo .env não encontrado: {env_path}")

# --- Variáveis de Configuração ---

# E-mail que recebe o papel de admin ao se cadastrar
ADMIN_EMAIL = (os.environ.get("ADMIN_EMAIL") or "").strip().lower() or None
if not ADMIN_EMAIL:
    logger.warning(
        "ADMIN_EMAIL não encontrado no ambiente. Nenhum admin será criado automaticamente.")
else:
    logger.info("ADMIN_EMAIL configurado corretamente")

# Validade da sessão (horas)
SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
logger.info(f"Validade da sessão configurada: {SESSION_TTL_HOURS}h")

# --- Configurações do EAN-13 ---

# Prefixo GS1 do país (789 = Brasil)
EAN_COUNTRY_PREFIX = os.environ.get("EAN_COUNTRY_PREFIX", "789")
if len(EAN_COUNTRY_PREFIX) != 3 or not EAN_COUNTRY_PREFIX.isdigit():
    logger.warning(
        f"EAN_COUNTRY_PREFIX inválido ({EAN_COUNTRY_PREFIX!r}). Usando 789.")
    EAN_COUNTRY_PREFIX = "789"

# Primeiro sufixo sequencial de uma base recém-criada
EAN_SEQUENCE_START = os.environ.get("EAN_SEQUENCE_START", "0001")
if len(EAN_SEQUENCE_START) != 4 or not EAN_SEQUENCE_START.isdigit():
    logger.warning(
        f"EAN_SEQUENCE_START inválido ({EAN_SEQUENCE_START!r}). Usando 0001.")
    EAN_SEQUENCE_START = "0001"

# Limite de códigos por lote; valores fora de 1..1000 caem no teto
MAX_BATCH_SIZE_LIMIT = 1000


def parse_max_batch_size(raw) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning(
            f"MAX_BATCH_SIZE inválido ({raw!r}). Usando {MAX_BATCH_SIZE_LIMIT}.")
        return MAX_BATCH_SIZE_LIMIT
    if value < 1 or value > MAX_BATCH_SIZE_LIMIT:
        logger.warning(
            f"MAX_BATCH_SIZE fora do intervalo 1..{MAX_BATCH_SIZE_LIMIT} ({value}). Usando {MAX_BATCH_SIZE_LIMIT}.")
        return MAX_BATCH_SIZE_LIMIT
    return value


MAX_BATCH_SIZE = parse_max_batch_size(os.environ.get("MAX_BATCH_SIZE", "1000"))

# Nível de log da aplicação (DEBUG, INFO, WARNING, ERROR)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR"):
    logger.warning(f"LOG_LEVEL inválido ({LOG_LEVEL!r}). Usando INFO.")
    LOG_LEVEL = "INFO"

# Caminhos para arquivos
DB_PATH = Path(os.environ.get("GERADOR_EAN_DB_PATH",
                              str(BACKEND_DIR / "gerador_ean.db")))
LOG_DIR = Path(os.environ.get("GERADOR_EAN_LOG_DIR",
                              str(BACKEND_DIR / "logs")))

# Garante que o diretório do banco de dados existe
DB_PATH.parent.mkdir(exist_ok=True, parents=True)

# Configurações Fixas
PROJECT_NAME = "Gerador EAN-13 API"
API_V1_STR = "/api/v1"

# Log das configurações carregadas
logger.info(f"BACKEND_DIR: {BACKEND_DIR}")
logger.info(f"DB_PATH: {DB_PATH}")
logger.info(f"LOG_DIR: {LOG_DIR}")
