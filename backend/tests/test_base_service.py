import sqlite3

import pytest

from gerador_ean import database
from gerador_ean.exceptions import (
    CursorConflictError, DuplicateRecordError, PersistenceError, RecordNotFoundError, ValidationError
)
from gerador_ean.services import base_service


@pytest.fixture
def owner_id(db):
    return database.insert_user("dono@teste.com.br", "x", db)


@pytest.fixture
def base(db, owner_id):
    return base_service.create_base(owner_id, "  Loja X  ", "42821", db)


def test_create_base_seeds_cursor(base, owner_id):
    assert base["name"] == "Loja X"
    assert base["user_id"] == owner_id
    assert base["last_base_code"] == "789428210001"


def test_create_base_validation(db, owner_id):
    with pytest.raises(ValidationError):
        base_service.create_base(owner_id, "   ", "42821", db)
    with pytest.raises(ValidationError):
        base_service.create_base(owner_id, "Loja", "4282", db)
    with pytest.raises(ValidationError):
        base_service.create_base(owner_id, "x" * 101, "42821", db)


def test_duplicate_name_per_user(db, owner_id, base):
    with pytest.raises(DuplicateRecordError):
        base_service.create_base(owner_id, "Loja X", "11111", db)

    other_id = database.insert_user("outro@teste.com.br", "x", db)
    assert base_service.create_base(other_id, "Loja X", "11111", db)["user_id"] == other_id


def test_list_bases_is_scoped_and_ordered(db, owner_id, base):
    base_service.create_base(owner_id, "Atacado", "11111", db)
    other_id = database.insert_user("outro@teste.com.br", "x", db)
    base_service.create_base(other_id, "Zeta", "22222", db)

    assert [b["name"] for b in base_service.list_bases(owner_id, db)] == ["Atacado", "Loja X"]
    assert [b["name"] for b in base_service.list_bases(None, db)] == ["Atacado", "Loja X", "Zeta"]


def test_other_users_cannot_see_base(db, base):
    other_id = database.insert_user("outro@teste.com.br", "x", db)
    with pytest.raises(RecordNotFoundError):
        base_service.get_visible_base(base["id"], other_id, db)
    assert base_service.get_visible_base(base["id"], None, db)["id"] == base["id"]


def test_generate_advances_cursor(db, owner_id, base):
    result = base_service.generate_for_base(base["id"], 3, owner_id, db)

    assert [c["base_code"] for c in result["codes"]] == [
        "789428210001", "789428210002", "789428210003"]
    assert result["cursor_saved"] is True
    assert result["warning"] is None
    assert result["last_base_code"] == "789428210004"
    assert database.get_ean_base(base["id"], db)["last_base_code"] == "789428210004"

    follow_up = base_service.generate_for_base(base["id"], 2, owner_id, db)
    assert follow_up["codes"][0]["base_code"] == "789428210004"


def test_invalid_quantity_leaves_cursor_untouched(db, owner_id, base):
    with pytest.raises(ValidationError):
        base_service.generate_for_base(base["id"], 1001, owner_id, db)
    assert database.get_ean_base(base["id"], db)["last_base_code"] == "789428210001"


def test_changing_identifier_resets_tail(db, owner_id, base):
    base_service.generate_for_base(base["id"], 10, owner_id, db)
    updated = base_service.update_base(base["id"], owner_id, {"cnpj_prefix": "11111"}, db)
    assert updated["last_base_code"] == "789428210011"

    result = base_service.generate_for_base(base["id"], 1, owner_id, db)
    assert result["codes"][0]["base_code"] == "789111110000"
    assert result["last_base_code"] == "789111110001"


def test_update_requires_fields(db, owner_id, base):
    with pytest.raises(ValidationError):
        base_service.update_base(base["id"], owner_id, {}, db)


def test_failed_cursor_write_is_reported(db, owner_id, base, monkeypatch):
    def failing_write(*args, **kwargs):
        raise PersistenceError()

    monkeypatch.setattr(database, "compare_and_set_last_base_code", failing_write)
    result = base_service.generate_for_base(base["id"], 2, owner_id, db)

    assert len(result["codes"]) == 2
    assert result["cursor_saved"] is False
    assert result["warning"] == base_service.CURSOR_NOT_SAVED_WARNING
    assert result["last_base_code"] == "789428210001"
    assert database.get_ean_base(base["id"], db)["last_base_code"] == "789428210001"


def test_lost_race_regenerates_from_fresh_cursor(db, owner_id, base, monkeypatch):
    real_write = database.compare_and_set_last_base_code
    calls = []

    def racing_write(base_id, expected, new_value, conn):
        if not calls:
            # Outra requisição avança o cursor entre a leitura e a escrita
            real_write(base_id, expected, "789428210006", conn)
        calls.append(expected)
        return real_write(base_id, expected, new_value, conn)

    monkeypatch.setattr(database, "compare_and_set_last_base_code", racing_write)
    result = base_service.generate_for_base(base["id"], 2, owner_id, db)

    assert calls == ["789428210001", "789428210006"]
    assert [c["base_code"] for c in result["codes"]] == ["789428210006", "789428210007"]
    assert database.get_ean_base(base["id"], db)["last_base_code"] == "789428210008"


def test_persistent_conflict_raises(db, owner_id, base, monkeypatch):
    monkeypatch.setattr(database, "compare_and_set_last_base_code", lambda *args: False)
    with pytest.raises(CursorConflictError):
        base_service.generate_for_base(base["id"], 1, owner_id, db)


def test_delete_base(db, owner_id, base):
    base_service.delete_base(base["id"], owner_id, db)
    with pytest.raises(RecordNotFoundError):
        base_service.generate_for_base(base["id"], 1, owner_id, db)


def test_cursor_write_takes_the_database_write_lock(db, db_path, base):
    conn = sqlite3.connect(str(db_path), timeout=0.1)
    conn.row_factory = sqlite3.Row
    holder = database._connect()
    holder.execute("BEGIN IMMEDIATE")
    try:
        with pytest.raises(PersistenceError):
            database.compare_and_set_last_base_code(base["id"], "789428210001", "789428210003", conn)
    finally:
        holder.rollback()
        holder.close()

    assert database.compare_and_set_last_base_code(base["id"], "789428210001", "789428210003", conn)
    assert not database.compare_and_set_last_base_code(base["id"], "789428210001", "789428210005", conn)
    assert not conn.in_transaction
    assert database.get_ean_base(base["id"], db)["last_base_code"] == "789428210003"
    conn.close()
