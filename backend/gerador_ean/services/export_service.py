# backend/gerador_ean/services/export_service.py
import io
import re
import time
import unicodedata
from typing import Dict, List, Tuple, Union

import pandas as pd

from gerador_ean.exceptions import ValidationError
from gerador_ean.utils import validate_gtin

EXPORT_FORMATS = ("txt", "csv", "excel")


def _safe_name(name: str) -> str:
    """Nome da base utilizável em nome de arquivo (cabeçalhos HTTP só aceitam latin-1)."""
    folded = unicodedata.normalize("NFKD", name or "").encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^\w\-]+", "_", folded, flags=re.ASCII).strip("_")
    return cleaned or "export"


def build_export(codes: List[str], base_name: str, fmt: str = "txt"
                 ) -> Tuple[Union[str, bytes], str, str]:
    """
    Monta o arquivo de download dos códigos gerados.
    Retorna (conteúdo, media_type, nome do arquivo).
    """
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Formato de exportação inválido: {fmt}")
    if not codes:
        raise ValidationError("Nenhum código para exportar.")
    invalid = [c for c in codes if len(c) != 13 or not validate_gtin(c)]
    if invalid:
        raise ValidationError(f"Código(s) EAN-13 inválido(s): {', '.join(invalid[:5])}")

    filename = f"ean-codes-{_safe_name(base_name)}-{int(time.time() * 1000)}"

    if fmt == "txt":
        return "\n".join(codes), "text/plain", filename + ".txt"

    df = pd.DataFrame({"EAN-13": codes})
    df.insert(0, "Base", [c[:12] for c in codes])

    if fmt == "excel":
        stream = io.BytesIO()
        df.to_excel(stream, index=False)
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        filename += ".xlsx"
    else:
        # Força os códigos como TEXTO ao abrir o CSV no Excel
        for col in ("Base", "EAN-13"):
            df[col] = df[col].apply(lambda x: f'="{x}"')
        stream = io.StringIO()
        df.to_csv(stream, index=False)
        media_type = "text/csv"
        filename += ".csv"

    return stream.getvalue(), media_type, filename


def summarize(codes: List[str]) -> Dict:
    return {"count": len(codes), "first": codes[0] if codes else None,
            "last": codes[-1] if codes else None}
