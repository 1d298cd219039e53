# backend/gerador_ean/services/base_service.py
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from gerador_ean import database
from gerador_ean.core.logging_config import log_structured_event
from gerador_ean.exceptions import (
    CursorConflictError, PersistenceError, RecordNotFoundError, ValidationError
)
from gerador_ean.services import ean_service
from gerador_ean.utils import ensure_identifier

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
CURSOR_NOT_SAVED_WARNING = (
    "Os códigos foram gerados, mas o último código NÃO foi salvo. "
    "A próxima geração pode repetir estes códigos."
)


def _clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Digite um nome para identificar")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"O nome deve ter no máximo {MAX_NAME_LENGTH} caracteres.")
    return name


def get_visible_base(base_id: int, owner_id: Optional[int], db: sqlite3.Connection) -> Dict:
    """
    Carrega uma base respeitando a visibilidade: owner_id None (admin) vê todas,
    os demais só enxergam as próprias.
    """
    base = database.get_ean_base(base_id, db)
    if not base or (owner_id is not None and base["user_id"] != owner_id):
        raise RecordNotFoundError("Base não encontrada.")
    return base


def list_bases(owner_id: Optional[int], db: sqlite3.Connection) -> List[Dict]:
    return database.list_ean_bases(owner_id, db)


def create_base(user_id: int, name: str, cnpj_prefix: str, db: sqlite3.Connection) -> Dict:
    """Cria uma base nomeada com o cursor semeado em prefixo + CNPJ + sufixo inicial."""
    name = _clean_name(name)
    ensure_identifier(cnpj_prefix)
    initial_code = ean_service.initial_base_code(cnpj_prefix)

    base = database.insert_ean_base(user_id, name, cnpj_prefix, initial_code, db)
    log_structured_event("ean_bases", "base_created", {
        "base_id": base["id"], "user_id": user_id, "last_base_code": initial_code})
    return base


def update_base(base_id: int, owner_id: Optional[int], fields: Dict[str, Any],
                db: sqlite3.Connection) -> Dict:
    """Renomeia a base ou troca o identificador; o cursor salvo não é tocado."""
    get_visible_base(base_id, owner_id, db)

    changes = {}
    if fields.get("name") is not None:
        changes["name"] = _clean_name(fields["name"])
    if fields.get("cnpj_prefix") is not None:
        changes["cnpj_prefix"] = ensure_identifier(fields["cnpj_prefix"])
    if not changes:
        raise ValidationError("Nenhum dado fornecido para atualização.")

    if not database.update_ean_base(base_id, changes, db):
        raise RecordNotFoundError("Base não encontrada.")

    log_structured_event("ean_bases", "base_updated", {
        "base_id": base_id, "fields": sorted(changes)})
    return database.get_ean_base(base_id, db)


def delete_base(base_id: int, owner_id: Optional[int], db: sqlite3.Connection) -> Dict:
    base = get_visible_base(base_id, owner_id, db)
    if not database.delete_ean_base(base_id, db):
        raise PersistenceError("Erro ao remover base")
    log_structured_event("ean_bases", "base_deleted", {"base_id": base_id})
    return base


class EanGenerationPipeline:
    """
    Orquestra ler cursor -> gerar lote -> gravar cursor -> relatar.

    A gravação é um compare-and-set: se outra geração avançou o cursor entre a
    leitura e a escrita, o lote é descartado (nunca foi mostrado) e recalculado
    a partir do cursor novo.
    """

    max_attempts = 3

    def __init__(self, db_connection: sqlite3.Connection):
        self.db = db_connection

    def generate_for_base(self, base_id: int, quantity: int,
                          owner_id: Optional[int] = None) -> Dict[str, Any]:
        ean_service.validate_quantity(quantity)

        for attempt in range(1, self.max_attempts + 1):
            base = get_visible_base(base_id, owner_id, self.db)
            stored_cursor = base["last_base_code"]
            batch = ean_service.generate_prefixed_batch(
                stored_cursor, base["cnpj_prefix"], quantity)

            try:
                saved = database.compare_and_set_last_base_code(
                    base_id, stored_cursor, batch.next_base, self.db)
            except PersistenceError:
                log_structured_event("ean_generation", "cursor_save_failed", {
                    "base_id": base_id, "start_base": batch.start_base,
                    "next_base": batch.next_base}, "ERROR")
                return self._report(base, batch, stored_cursor, cursor_saved=False)

            if saved:
                log_structured_event("ean_generation", "batch_generated", {
                    "base_id": base_id, "quantity": quantity,
                    "start_base": batch.start_base, "next_base": batch.next_base,
                    "attempt": attempt})
                return self._report(base, batch, batch.next_base, cursor_saved=True)

            log_structured_event("ean_generation", "cursor_conflict", {
                "base_id": base_id, "expected": stored_cursor, "attempt": attempt}, "WARNING")

        raise CursorConflictError()

    def _report(self, base: Dict, batch: ean_service.EanBatch, stored_cursor: str,
                cursor_saved: bool) -> Dict[str, Any]:
        return {
            "base_id": base["id"],
            "base_name": base["name"],
            "codes": [c._asdict() for c in batch.codes],
            "quantity": len(batch.codes),
            "start_base": batch.start_base,
            "next_base": batch.next_base,
            "last_base_code": stored_cursor,
            "cursor_saved": cursor_saved,
            "warning": None if cursor_saved else CURSOR_NOT_SAVED_WARNING,
        }


def generate_for_base(base_id: int, quantity: int, owner_id: Optional[int],
                      db: sqlite3.Connection) -> Dict[str, Any]:
    """Função wrapper para instanciar e executar o pipeline de geração."""
    pipeline = EanGenerationPipeline(db)
    return pipeline.generate_for_base(base_id, quantity, owner_id)
