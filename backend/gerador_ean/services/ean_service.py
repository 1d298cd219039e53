# backend/gerador_ean/services/ean_service.py
"""
Geração determinística de sequências EAN-13.

Funções puras: nada aqui lê ou grava o cursor persistido. Quem chama fornece o
código base inicial e é responsável por salvar o `next_base` devolvido.
"""
import logging
from typing import List, NamedTuple, Optional

from gerador_ean.core import config
from gerador_ean.exceptions import ValidationError
from gerador_ean.utils import calculate_ean_check_digit, ensure_base_code, ensure_identifier

logger = logging.getLogger(__name__)

BASE_CODE_LENGTH = 12
MAX_BASE_VALUE = 10 ** BASE_CODE_LENGTH - 1
TAIL_LENGTH = 4
MAX_TAIL_VALUE = 10 ** TAIL_LENGTH - 1
RESET_TAIL = "0000"


class EanCode(NamedTuple):
    code: str
    base_code: str


class EanBatch(NamedTuple):
    codes: List[EanCode]
    start_base: str
    next_base: str


def validate_quantity(quantity) -> int:
    """Garante 1 <= quantidade <= MAX_BATCH_SIZE."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantidade deve ser um número inteiro.")
    if quantity < 1 or quantity > config.MAX_BATCH_SIZE:
        raise ValidationError(
            f"Quantidade deve ser entre 1 e {config.MAX_BATCH_SIZE}")
    return quantity


def format_base_code(value: int) -> str:
    return str(value).zfill(BASE_CODE_LENGTH)


def generate_batch(start_base: str, quantity: int) -> EanBatch:
    """
    Gera `quantity` códigos EAN-13 consecutivos a partir de `start_base`.

    O lote é rejeitado inteiro se o cursor seguinte não couber em 12 dígitos.
    """
    ensure_base_code(start_base)
    validate_quantity(quantity)

    start = int(start_base)
    next_value = start + quantity
    if next_value > MAX_BASE_VALUE:
        raise ValidationError(
            "O lote ultrapassa a capacidade de 12 dígitos do código base.")

    codes = []
    for value in range(start, next_value):
        base_code = format_base_code(value)
        codes.append(EanCode(
            code=base_code + calculate_ean_check_digit(base_code),
            base_code=base_code))

    logger.debug(
        f"Lote gerado: {quantity} código(s) de {start_base} a {codes[-1].base_code}")
    return EanBatch(codes=codes, start_base=start_base,
                    next_base=format_base_code(next_value))


def compose_base_code(prefix: str, identifier: str, tail: str) -> str:
    """Prefixo do país (3) + identificador do CNPJ (5) + sufixo sequencial (4)."""
    base_code = f"{prefix}{identifier}{tail}"
    return ensure_base_code(base_code)


def initial_base_code(identifier: str, prefix: Optional[str] = None,
                      initial_tail: Optional[str] = None) -> str:
    ensure_identifier(identifier)
    return compose_base_code(prefix or config.EAN_COUNTRY_PREFIX, identifier,
                             initial_tail or config.EAN_SEQUENCE_START)


def resolve_start_base(cursor: Optional[str], identifier: str,
                       prefix: Optional[str] = None,
                       initial_tail: Optional[str] = None) -> str:
    """
    Decide de onde o próximo lote parte no modo prefixo + identificador.

    Sem cursor, parte da semente. Se o cursor salvo pertence a outro
    prefixo/identificador, o sufixo volta para 0000.
    """
    prefix = prefix or config.EAN_COUNTRY_PREFIX
    ensure_identifier(identifier)
    head = prefix + identifier

    if cursor is None:
        return initial_base_code(identifier, prefix, initial_tail)

    ensure_base_code(cursor)
    if cursor[:-TAIL_LENGTH] != head:
        logger.info(
            f"Cursor {cursor} não corresponde a {head}. Sufixo reiniciado em {RESET_TAIL}.")
        return compose_base_code(prefix, identifier, RESET_TAIL)
    return cursor


def generate_prefixed_batch(cursor: Optional[str], identifier: str, quantity: int,
                            prefix: Optional[str] = None,
                            initial_tail: Optional[str] = None) -> EanBatch:
    """Como generate_batch, mas só o sufixo de 4 dígitos avança."""
    start_base = resolve_start_base(cursor, identifier, prefix, initial_tail)
    validate_quantity(quantity)

    tail = int(start_base[-TAIL_LENGTH:])
    if tail + quantity > MAX_TAIL_VALUE:
        raise ValidationError(
            f"O lote ultrapassa o sufixo sequencial de 4 dígitos "
            f"(restam {max(MAX_TAIL_VALUE - tail, 0)} código(s) nesta base).")

    return generate_batch(start_base, quantity)


def codes_as_text(codes: List[EanCode]) -> str:
    """Listagem em texto puro, um código por linha."""
    return "\n".join(c.code for c in codes)
