from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, Protocol

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from .db import SessionLocal, db_session
from .errors import AppointmentNotFound, StoreFailure
from .models import (
    Appuntamento,
    Luogo,
    ModelloMessaggio,
    Paziente,
    StatoAppuntamento,
    TipoPagamento,
    TipoTrattamento,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BozzaAppuntamento:
    """Appuntamento non ancora salvato (singolo o occorrenza di una ricorrenza)."""

    paziente_id: str
    inizio: datetime
    fine: datetime
    luogo: Luogo = Luogo.STUDIO
    sede: str | None = None
    indirizzo_domicilio: str | None = None
    tipo_trattamento: TipoTrattamento = TipoTrattamento.SEDUTA
    tipo_pagamento: TipoPagamento = TipoPagamento.FATTURATO
    importo: Decimal | None = None
    stato: StatoAppuntamento = StatoAppuntamento.PRENOTATO
    note: str | None = None


CAMPI_AGGIORNABILI = frozenset(
    {
        "inizio",
        "fine",
        "stato",
        "pagato",
        "luogo",
        "sede",
        "indirizzo_domicilio",
        "tipo_trattamento",
        "tipo_pagamento",
        "importo",
        "note",
        "promemoria_inviato_il",
    }
)


class AppointmentStore(Protocol):
    def lista_appuntamenti(self, da: datetime, a: datetime) -> list[Appuntamento]: ...

    def get_appuntamento(self, appuntamento_id: str) -> Appuntamento | None: ...

    def crea_appuntamento(self, bozza: BozzaAppuntamento) -> Appuntamento: ...

    def aggiorna_appuntamento(self, appuntamento_id: str, campi: dict[str, Any]) -> Appuntamento: ...

    def elimina_appuntamento(self, appuntamento_id: str) -> None: ...

    def lista_modelli_messaggio(self) -> list[ModelloMessaggio]: ...

    def get_paziente(self, paziente_id: str) -> Paziente | None: ...


class SqlAppointmentStore:
    """
    Archivio appuntamenti su SQLAlchemy.
    Gli oggetti restituiti sono staccati dalla sessione (expire_on_commit=False)
    con il paziente già caricato, quindi leggibili senza lazy-load.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._factory = session_factory or SessionLocal

    @contextmanager
    def _sessione(self, operazione: str) -> Iterator[Session]:
        try:
            with db_session(self._factory) as s:
                yield s
        except SQLAlchemyError as e:
            logger.exception("Errore archivio durante %s", operazione)
            raise StoreFailure(f"Errore di salvataggio dati ({operazione}).") from e

    # =========================
    # Appuntamenti
    # =========================
    def lista_appuntamenti(self, da: datetime, a: datetime) -> list[Appuntamento]:
        with self._sessione("lettura agenda") as s:
            q = (
                select(Appuntamento)
                .options(selectinload(Appuntamento.paziente))
                .where(and_(Appuntamento.inizio >= da, Appuntamento.inizio < a))
                .order_by(Appuntamento.inizio.asc())
            )
            return list(s.scalars(q))

    def get_appuntamento(self, appuntamento_id: str) -> Appuntamento | None:
        with self._sessione("lettura appuntamento") as s:
            q = (
                select(Appuntamento)
                .options(selectinload(Appuntamento.paziente))
                .where(Appuntamento.id == appuntamento_id)
            )
            return s.scalars(q).first()

    def crea_appuntamento(self, bozza: BozzaAppuntamento) -> Appuntamento:
        with self._sessione("creazione appuntamento") as s:
            app = Appuntamento(
                paziente_id=bozza.paziente_id,
                inizio=bozza.inizio,
                fine=bozza.fine,
                stato=bozza.stato,
                pagato=False,
                luogo=bozza.luogo,
                sede=bozza.sede,
                indirizzo_domicilio=bozza.indirizzo_domicilio,
                tipo_trattamento=bozza.tipo_trattamento,
                tipo_pagamento=bozza.tipo_pagamento,
                importo=bozza.importo,
                note=bozza.note,
            )
            s.add(app)
            s.flush()
            app.paziente  # carica il paziente prima di chiudere la sessione
            return app

    def aggiorna_appuntamento(self, appuntamento_id: str, campi: dict[str, Any]) -> Appuntamento:
        sconosciuti = set(campi) - CAMPI_AGGIORNABILI
        if sconosciuti:
            raise ValueError(f"Campi non aggiornabili: {', '.join(sorted(sconosciuti))}")

        with self._sessione("aggiornamento appuntamento") as s:
            app = s.get(Appuntamento, appuntamento_id, options=[selectinload(Appuntamento.paziente)])
            if app is None:
                raise AppointmentNotFound(appuntamento_id)
            for nome, valore in campi.items():
                setattr(app, nome, valore)
            s.flush()
            return app

    def elimina_appuntamento(self, appuntamento_id: str) -> None:
        with self._sessione("eliminazione appuntamento") as s:
            app = s.get(Appuntamento, appuntamento_id)
            if app is None:
                raise AppointmentNotFound(appuntamento_id)
            s.delete(app)

    # =========================
    # Modelli messaggio / pazienti
    # =========================
    def lista_modelli_messaggio(self) -> list[ModelloMessaggio]:
        with self._sessione("lettura modelli messaggio") as s:
            q = (
                select(ModelloMessaggio)
                .where(ModelloMessaggio.attivo.is_(True))
                .order_by(ModelloMessaggio.predefinito.desc(), ModelloMessaggio.nome.asc())
            )
            return list(s.scalars(q))

    def get_paziente(self, paziente_id: str) -> Paziente | None:
        with self._sessione("lettura paziente") as s:
            return s.get(Paziente, paziente_id)

    def crea_paziente(self, nome: str, cognome: str, telefono: str | None = None) -> str:
        with self._sessione("creazione paziente") as s:
            p = Paziente(nome=nome.strip(), cognome=cognome.strip(), telefono=(telefono or "").strip() or None)
            s.add(p)
            s.flush()
            return p.id

    def lista_pazienti(self) -> list[Paziente]:
        with self._sessione("lettura pazienti") as s:
            return list(s.scalars(select(Paziente).order_by(Paziente.cognome, Paziente.nome)))
