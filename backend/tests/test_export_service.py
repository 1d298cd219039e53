import io

import pandas as pd
import pytest

from gerador_ean.exceptions import ValidationError
from gerador_ean.services import ean_service, export_service

CODES = [c.code for c in ean_service.generate_batch("789428210001", 3).codes]


def test_txt_export_is_plain_newline_listing():
    content, media_type, filename = export_service.build_export(CODES, "Loja X", "txt")

    assert content == "\n".join(CODES)
    assert media_type == "text/plain"
    assert filename.startswith("ean-codes-Loja_X-")
    assert filename.endswith(".txt")


def test_csv_export_keeps_codes_as_text():
    content, media_type, filename = export_service.build_export(CODES, "Loja X", "csv")

    df = pd.read_csv(io.StringIO(content), dtype=str)
    assert media_type == "text/csv"
    assert filename.endswith(".csv")
    assert list(df.columns) == ["Base", "EAN-13"]
    assert df["EAN-13"].tolist() == [f'="{c}"' for c in CODES]


def test_excel_export():
    content, media_type, filename = export_service.build_export(CODES, "", "excel")

    df = pd.read_excel(io.BytesIO(content), dtype=str)
    assert filename.startswith("ean-codes-export-")
    assert filename.endswith(".xlsx")
    assert df["EAN-13"].tolist() == CODES


def test_export_rejects_invalid_input():
    with pytest.raises(ValidationError):
        export_service.build_export([], "Loja", "txt")
    with pytest.raises(ValidationError):
        export_service.build_export(["7894282100010"], "Loja", "txt")
    with pytest.raises(ValidationError):
        export_service.build_export(CODES, "Loja", "pdf")


@pytest.mark.parametrize("base_name, expected", [
    ("Padaria São João", "ean-codes-Padaria_Sao_Joao-"),
    ("Loja 東京", "ean-codes-Loja-"),
    ("東京", "ean-codes-export-"),
])
def test_filename_is_ascii_only(base_name, expected):
    _, _, filename = export_service.build_export(CODES, base_name, "txt")

    assert filename.startswith(expected)
    filename.encode("ascii")
