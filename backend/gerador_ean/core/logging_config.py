# backend/gerador_ean/core/logging_config.py
import logging
import os
import sys
from datetime import datetime

from gerador_ean.core.config import LOG_DIR, LOG_LEVEL

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = LOG_DIR / f"gerador_ean_{datetime.now():%Y%m%d}.log"

# Serviços que registram eventos de negócio via log_structured_event
EVENT_LOGGERS = ("app", "auth", "admin", "ean_bases", "ean_generation", "ean/export")


def setup_logging():
    """Arquivo diário + console, no nível de LOG_LEVEL. Chamadas repetidas não duplicam handlers."""
    root_logger = logging.getLogger()
    if any(getattr(h, "baseFilename", None) == os.path.abspath(LOG_FILE) for h in root_logger.handlers):
        return LOG_FILE

    LOG_DIR.mkdir(exist_ok=True, parents=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    for handler in (logging.FileHandler(LOG_FILE, encoding='utf-8'),
                    logging.StreamHandler(sys.stdout)):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    root_logger.setLevel(logging.WARNING)
    for name in ("gerador_ean", "__main__", "main") + EVENT_LOGGERS:
        logging.getLogger(name).setLevel(LOG_LEVEL)

    logging.getLogger("gerador_ean").info(f"Logging configurado. Arquivo: {LOG_FILE}")
    return LOG_FILE


def log_structured_event(service: str, event: str, data: dict, level: str = "INFO"):
    """Registra um evento de negócio como `EVENT: <evento> - DATA: {...}`."""
    payload = {'service': service, 'event': event, 'data': data}
    logging.getLogger(service).log(
        getattr(logging, level.upper(), logging.INFO), f"EVENT: {event} - DATA: {payload}")
