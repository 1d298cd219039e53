# backend/gerador_ean/database.py
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional, Any, Dict, List
import logging

from gerador_ean.core import config
from gerador_ean.exceptions import DuplicateRecordError, PersistenceError

logger = logging.getLogger(__name__)

# Lock para operações thread-safe
db_lock = threading.Lock()

# Colunas de saved_ean_bases que podem ser alteradas pela API
EAN_BASE_UPDATABLE_FIELDS = ("name", "cnpj_prefix")


def utcnow_iso(moment: Optional[datetime] = None) -> str:
    """Timestamp ISO-8601 em UTC com largura fixa (comparável como texto)."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(str(config.DB_PATH), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")  # Ativar chaves estrangeiras
    return conn


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """
    Fornece uma conexão com o banco de dados para injeção de dependência.
    Útil para frameworks como FastAPI.
    """
    with db_lock:
        db = _connect()
        try:
            yield db
        finally:
            db.close()


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Gerenciador de contexto para conexões com o banco de dados.
    Útil para operações específicas que não usam injeção de dependência.
    """
    with db_lock:
        conn = _connect()
        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Erro de banco de dados: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()


def init_db():
    """Cria e inicializa as tabelas do banco de dados se elas não existirem."""
    try:
        with get_db_connection() as conn:
            cur = conn.cursor()

            cur.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    token TEXT PRIMARY KEY,
                    user_id INTEGER NOT NULL,
                    expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS user_roles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    role TEXT NOT NULL CHECK (role IN ('admin', 'user')),
                    created_at TEXT NOT NULL,
                    UNIQUE (user_id, role),
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
                )
            """)

            # Acesso com prazo de validade, concedido pelo admin
            cur.execute("""
                CREATE TABLE IF NOT EXISTS user_access (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER UNIQUE NOT NULL,
                    expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS saved_ean_bases (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL
                        CHECK (length(trim(name)) > 0 AND length(name) <= 100),
                    cnpj_prefix TEXT NOT NULL
                        CHECK (cnpj_prefix GLOB '[0-9][0-9][0-9][0-9][0-9]'),
                    last_base_code TEXT NOT NULL
                        CHECK (length(last_base_code) = 12
                               AND last_base_code NOT GLOB '*[^0-9]*'),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (user_id, name),
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
                )
            """)

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_bases_user_id ON saved_ean_bases(user_id)")

            conn.commit()
        logger.info("Banco de dados inicializado com sucesso.")
    except sqlite3.Error as e:
        logger.error(f"Erro ao inicializar o banco de dados: {e}")
        raise

# =============================================================================
# === USUÁRIOS E SESSÕES ======================================================
# =============================================================================


def insert_user(email: str, password_hash: str, db: sqlite3.Connection) -> int:
    """Insere um novo usuário. Levanta DuplicateRecordError se o e-mail já existir."""
    try:
        cur = db.cursor()
        cur.execute(
            "INSERT INTO users (email, password_hash, created_at) VALUES (?, ?, ?)",
            (email, password_hash, utcnow_iso()))
        db.commit()
        return cur.lastrowid
    except sqlite3.IntegrityError:
        db.rollback()
        raise DuplicateRecordError("Já existe uma conta com esse e-mail.")


def get_user_by_email(email: str, db: sqlite3.Connection) -> Optional[Dict]:
    row = db.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
    return dict(row) if row else None


def get_user_by_id(user_id: int, db: sqlite3.Connection) -> Optional[Dict]:
    row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return dict(row) if row else None


def list_users_with_access(db: sqlite3.Connection) -> List[Dict]:
    """Retorna todos os usuários com o papel de admin e a validade do acesso."""
    cur = db.cursor()
    cur.execute("""
        SELECT
            u.id,
            u.email,
            EXISTS (
                SELECT 1 FROM user_roles r
                WHERE r.user_id = u.id AND r.role = 'admin'
            ) AS is_admin,
            a.expires_at
        FROM users u
        LEFT JOIN user_access a ON a.user_id = u.id
        ORDER BY u.email ASC
    """)
    return [dict(row) for row in cur.fetchall()]


def insert_session(token: str, user_id: int, expires_at: str, db: sqlite3.Connection) -> None:
    db.execute(
        "INSERT INTO sessions (token, user_id, expires_at, created_at) VALUES (?, ?, ?, ?)",
        (token, user_id, expires_at, utcnow_iso()))
    db.commit()


def get_session_user(token: str, now: str, db: sqlite3.Connection) -> Optional[Dict]:
    """Retorna o usuário dono de uma sessão ainda válida."""
    row = db.execute("""
        SELECT u.* FROM sessions s
        JOIN users u ON u.id = s.user_id
        WHERE s.token = ? AND s.expires_at > ?
    """, (token, now)).fetchone()
    return dict(row) if row else None


def delete_session(token: str, db: sqlite3.Connection) -> bool:
    cur = db.cursor()
    cur.execute("DELETE FROM sessions WHERE token = ?", (token,))
    db.commit()
    return cur.rowcount > 0


def delete_expired_sessions(now: str, db: sqlite3.Connection) -> int:
    cur = db.cursor()
    cur.execute("DELETE FROM sessions WHERE expires_at <= ?", (now,))
    db.commit()
    return cur.rowcount

# =============================================================================
# === PAPÉIS E ACESSO =========================================================
# =============================================================================


def has_role(user_id: int, role: str, db: sqlite3.Connection) -> bool:
    row = db.execute(
        "SELECT 1 FROM user_roles WHERE user_id = ? AND role = ?",
        (user_id, role)).fetchone()
    return row is not None


def add_role(user_id: int, role: str, db: sqlite3.Connection) -> None:
    db.execute(
        "INSERT OR IGNORE INTO user_roles (user_id, role, created_at) VALUES (?, ?, ?)",
        (user_id, role, utcnow_iso()))
    db.commit()


def remove_role(user_id: int, role: str, db: sqlite3.Connection) -> bool:
    cur = db.cursor()
    cur.execute(
        "DELETE FROM user_roles WHERE user_id = ? AND role = ?", (user_id, role))
    db.commit()
    return cur.rowcount > 0


def has_valid_access(user_id: int, now: str, db: sqlite3.Connection) -> bool:
    """Admins sempre têm acesso; os demais precisam de um prazo ainda não vencido."""
    row = db.execute("""
        SELECT
            EXISTS (
                SELECT 1 FROM user_access
                WHERE user_id = :user_id AND expires_at > :now
            )
            OR EXISTS (
                SELECT 1 FROM user_roles
                WHERE user_id = :user_id AND role = 'admin'
            )
    """, {"user_id": user_id, "now": now}).fetchone()
    return bool(row[0])


def get_access_expiration(user_id: int, db: sqlite3.Connection) -> Optional[str]:
    row = db.execute(
        "SELECT expires_at FROM user_access WHERE user_id = ?", (user_id,)).fetchone()
    return row["expires_at"] if row else None


def upsert_access(user_id: int, expires_at: str, db: sqlite3.Connection) -> None:
    now = utcnow_iso()
    db.execute("""
        INSERT INTO user_access (user_id, expires_at, created_at, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (user_id) DO UPDATE SET
            expires_at = excluded.expires_at,
            updated_at = excluded.updated_at
    """, (user_id, expires_at, now, now))
    db.commit()


def delete_access(user_id: int, db: sqlite3.Connection) -> bool:
    cur = db.cursor()
    cur.execute("DELETE FROM user_access WHERE user_id = ?", (user_id,))
    db.commit()
    return cur.rowcount > 0

# =============================================================================
# === BASES EAN SALVAS ========================================================
# =============================================================================


def list_ean_bases(user_id: Optional[int], db: sqlite3.Connection) -> List[Dict]:
    """Lista as bases de um usuário (ou de todos, se user_id for None) ordenadas por nome."""
    if user_id is None:
        cur = db.execute("SELECT * FROM saved_ean_bases ORDER BY name ASC, id ASC")
    else:
        cur = db.execute(
            "SELECT * FROM saved_ean_bases WHERE user_id = ? ORDER BY name ASC",
            (user_id,))
    return [dict(row) for row in cur.fetchall()]


def get_ean_base(base_id: int, db: sqlite3.Connection) -> Optional[Dict]:
    try:
        row = db.execute(
            "SELECT * FROM saved_ean_bases WHERE id = ?", (base_id,)).fetchone()
    except sqlite3.Error as e:
        logger.error(f"Erro ao buscar base EAN ID {base_id}: {e}")
        raise PersistenceError("Erro ao carregar a base salva.")
    return dict(row) if row else None


def insert_ean_base(user_id: int, name: str, cnpj_prefix: str,
                    last_base_code: str, db: sqlite3.Connection) -> Dict:
    """Cria uma base nomeada. Levanta DuplicateRecordError se o nome já existir para o usuário."""
    now = utcnow_iso()
    try:
        cur = db.cursor()
        cur.execute("""
            INSERT INTO saved_ean_bases
            (user_id, name, cnpj_prefix, last_base_code, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (user_id, name, cnpj_prefix, last_base_code, now, now))
        db.commit()
    except sqlite3.IntegrityError as e:
        db.rollback()
        if "UNIQUE" in str(e):
            raise DuplicateRecordError("Já existe uma base com esse nome.")
        logger.error(f"Base EAN rejeitada pelo banco: {e}")
        raise PersistenceError("Erro ao criar base.")
    logger.info(f"Base EAN ID {cur.lastrowid} criada para o usuário {user_id}.")
    return get_ean_base(cur.lastrowid, db)


def update_ean_base(base_id: int, fields: Dict[str, Any], db: sqlite3.Connection) -> bool:
    """Atualiza nome e/ou prefixo do CNPJ de uma base. O cursor nunca é alterado aqui."""
    fields_to_update = []
    params = []
    for key, value in fields.items():
        if key in EAN_BASE_UPDATABLE_FIELDS and value is not None:
            fields_to_update.append(f"{key} = ?")
            params.append(value)

    if not fields_to_update:
        return True  # Nenhum campo para atualizar

    params.extend([utcnow_iso(), base_id])
    try:
        cur = db.cursor()
        cur.execute(f"""
            UPDATE saved_ean_bases
            SET {', '.join(fields_to_update)}, updated_at = ?
            WHERE id = ?
        """, params)
        db.commit()
        return cur.rowcount > 0
    except sqlite3.IntegrityError:
        db.rollback()
        raise DuplicateRecordError("Já existe uma base com esse nome.")


def delete_ean_base(base_id: int, db: sqlite3.Connection) -> bool:
    try:
        cur = db.cursor()
        cur.execute("DELETE FROM saved_ean_bases WHERE id = ?", (base_id,))
        db.commit()
        return cur.rowcount > 0
    except sqlite3.Error as e:
        logger.error(f"Erro ao excluir base EAN ID {base_id}: {e}")
        db.rollback()
        return False


def compare_and_set_last_base_code(base_id: int, expected: str, new_value: str,
                                   db: sqlite3.Connection) -> bool:
    """
    Avança o cursor somente se ele ainda valer `expected`.
    Leitura e escrita acontecem numa transação IMMEDIATE, que reserva a escrita do banco.
    Retorna False quando outra geração já o alterou; falhas de escrita viram PersistenceError.
    """
    try:
        if db.in_transaction:
            db.commit()
        db.execute("BEGIN IMMEDIATE")
        row = db.execute(
            "SELECT last_base_code FROM saved_ean_bases WHERE id = ?", (base_id,)).fetchone()
        if row is None or row["last_base_code"] != expected:
            db.rollback()
            return False

        cur = db.cursor()
        cur.execute("""
            UPDATE saved_ean_bases
            SET last_base_code = ?, updated_at = ?
            WHERE id = ? AND last_base_code = ?
        """, (new_value, utcnow_iso(), base_id, expected))
        db.commit()
        return cur.rowcount > 0
    except sqlite3.Error as e:
        logger.error(f"Erro ao salvar último código da base ID {base_id}: {e}")
        db.rollback()
        raise PersistenceError("Erro ao salvar último código.")
