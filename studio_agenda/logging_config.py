"""
Logging strutturato JSON.

Uso:
    from studio_agenda.logging_config import configure_logging
    configure_logging("INFO")       # una volta all'avvio (API / CLI)

    logger = logging.getLogger(__name__)
    logger.info("Appuntamento creato", extra={"appuntamento_id": "..."})

Nei log finiscono solo identificativi, mai nomi o telefoni dei pazienti.
"""
from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

SERVICE_NAME = "studio_agenda"

LOG_FIELDS = ("asctime", "levelname", "name", "message")

FIELD_RENAME_MAP = {
    "levelname": "level",
    "name": "logger",
}


class ServiceFilter(logging.Filter):
    """Aggiunge il nome del servizio a ogni record."""

    def __init__(self, service_name: str = SERVICE_NAME) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service_name
        return True


def create_json_formatter() -> JsonFormatter:
    format_string = " ".join(f"%({f})s" for f in LOG_FIELDS)
    return JsonFormatter(format_string, rename_fields=FIELD_RENAME_MAP)


def configure_logging(level: str = "INFO", service_name: str = SERVICE_NAME) -> None:
    level_upper = level.upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Livello di log non valido: {level}. Validi: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    handler = logging.StreamHandler()
    handler.setLevel(level_upper)
    handler.setFormatter(create_json_formatter())
    handler.addFilter(ServiceFilter(service_name))

    root = logging.getLogger()
    root.setLevel(level_upper)
    # sostituisce gli handler esistenti per evitare righe duplicate
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
