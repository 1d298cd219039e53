import logging

from gerador_ean.core import logging_config


def test_setup_logging_is_idempotent():
    first = logging_config.setup_logging()
    handlers = list(logging.getLogger().handlers)

    assert logging_config.setup_logging() == first
    assert logging.getLogger().handlers == handlers
    assert first.parent.is_dir()


def test_structured_event_uses_requested_level(caplog):
    with caplog.at_level(logging.DEBUG, logger="ean_generation"):
        logging_config.log_structured_event(
            "ean_generation", "cursor_conflict", {"base_id": 7}, "WARNING")
        logging_config.log_structured_event("ean_generation", "sem_nivel", {}, "qualquer")

    conflict, fallback = caplog.records
    assert conflict.levelno == logging.WARNING
    assert conflict.name == "ean_generation"
    assert "EVENT: cursor_conflict" in conflict.getMessage()
    assert "'base_id': 7" in conflict.getMessage()
    assert fallback.levelno == logging.INFO
