# backend/gerador_ean/utils.py

from gerador_ean.exceptions import ValidationError


def is_digits(value, length: int) -> bool:
    """True se `value` for uma string com exatamente `length` dígitos ASCII."""
    return (
        isinstance(value, str)
        and len(value) == length
        and value.isascii()
        and value.isdigit()
    )


def ensure_base_code(base_code: str) -> str:
    if not is_digits(base_code, 12):
        raise ValidationError("O código base deve ter exatamente 12 dígitos numéricos.")
    return base_code


def ensure_identifier(identifier: str) -> str:
    if not is_digits(identifier, 5):
        raise ValidationError("Digite exatamente 5 dígitos do CNPJ.")
    return identifier


def calculate_ean_check_digit(base_code: str) -> str:
    """
    Calcula o dígito verificador de um EAN-13 a partir dos 12 dígitos do corpo.
    Posições pares (0, 2, ...) têm peso 1 e ímpares têm peso 3.
    """
    ensure_base_code(base_code)

    weighted_sum = sum(
        int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(base_code))

    return str((10 - (weighted_sum % 10)) % 10)


def validate_gtin(gtin: str) -> bool:
    """
    Valida um código GTIN usando o algoritmo de dígito verificador.
    """
    if not gtin or not isinstance(gtin, str) or not gtin.isascii() or not gtin.isdigit():
        return False

    if len(gtin) not in [8, 12, 13, 14]:
        return False

    # Converte a string de dígitos para uma lista de inteiros
    digits = [int(d) for d in gtin]

    # Pega o dígito verificador e o corpo do código
    check_digit = digits[-1]
    body = digits[:-1]

    # Soma ponderada dos dígitos (da direita para a esquerda)
    weighted_sum = sum(d * (3 if i % 2 == 0 else 1) for i, d in enumerate(reversed(body)))

    # Calcula o dígito verificador esperado
    expected_check_digit = (10 - (weighted_sum % 10)) % 10

    return check_digit == expected_check_digit
