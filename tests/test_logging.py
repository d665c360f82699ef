"""Logging strutturato JSON."""

from __future__ import annotations

import json
import logging

import pytest

from studio_agenda.logging_config import (
    FIELD_RENAME_MAP,
    SERVICE_NAME,
    ServiceFilter,
    configure_logging,
    create_json_formatter,
)


@pytest.fixture(autouse=True)
def _ripristina_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestConfigureLogging:
    def test_livello_predefinito(self) -> None:
        configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_livello_case_insensitive(self) -> None:
        configure_logging("debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_livello_non_valido(self) -> None:
        with pytest.raises(ValueError, match="Livello di log non valido"):
            configure_logging("VERBOSE")

    def test_sostituisce_gli_handler(self) -> None:
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1


class TestFormatter:
    def _record(self) -> logging.LogRecord:
        record = logging.LogRecord(
            name="studio_agenda.services",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Appuntamento creato",
            args=(),
            exc_info=None,
        )
        record.appuntamento_id = "abc"
        ServiceFilter().filter(record)
        return record

    def test_campi_rinominati_ed_extra(self) -> None:
        data = json.loads(create_json_formatter().format(self._record()))

        assert data["message"] == "Appuntamento creato"
        assert data["level"] == "INFO"
        assert data["logger"] == "studio_agenda.services"
        assert data["service"] == SERVICE_NAME
        assert data["appuntamento_id"] == "abc"
        for originale in FIELD_RENAME_MAP:
            assert originale not in data
