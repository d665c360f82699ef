"""Fixture condivise: database SQLite in memoria e archivio appuntamenti."""

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool

from studio_agenda import models  # noqa: F401  registra le tabelle su Base.metadata
from studio_agenda.db import Base, make_engine, make_session_factory
from studio_agenda.store import SqlAppointmentStore


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory) -> SqlAppointmentStore:
    return SqlAppointmentStore(session_factory)


@pytest.fixture
def paziente_id(store: SqlAppointmentStore) -> str:
    return store.crea_paziente("Maria Grazia", "Rossi", "333 123 4567")


@pytest.fixture
def adesso() -> datetime:
    # lunedì 12 ottobre 2026, ore 9
    return datetime(2026, 10, 12, 9, 0)
