"""
Disponibilità e conflitti di orario.

Gli intervalli sono semiaperti [inizio, fine): due appuntamenti consecutivi
(uno finisce quando l'altro inizia) non sono in conflitto.

Nota: il controllo legge gli appuntamenti esistenti e poi il chiamante scrive.
Tra le due operazioni non c'è alcun lock, quindi due prenotazioni quasi
simultanee sullo stesso orario possono passare entrambe.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Protocol


class Intervallo(Protocol):
    inizio: datetime
    fine: datetime


@dataclass(frozen=True)
class Slot:
    inizio: datetime
    fine: datetime

    @property
    def ora(self) -> str:
        return self.inizio.strftime("%H:%M")


@dataclass(frozen=True)
class PrevisioneDisponibilita:
    totale_appuntamenti: int
    minuti_occupati: int
    minuti_disponibili: int
    tasso_occupazione: float
    slot_disponibili: int
    raccomandazione: str


def intervalli_sovrapposti(cs: datetime, ce: datetime, es: datetime, ee: datetime) -> bool:
    """Sovrapposizione tra [cs, ce) e [es, ee) nello stesso giorno di calendario."""
    if cs.date() != es.date():
        return False
    return (es <= cs < ee) or (es < ce <= ee) or (cs <= es and ce >= ee)


def trova_conflitti(
    inizio: datetime,
    fine: datetime,
    esistenti: Iterable[Intervallo],
    escludi_id: str | None = None,
) -> list:
    """Appuntamenti esistenti che si sovrappongono al candidato (escluso quello che si sta spostando)."""
    return [
        e
        for e in esistenti
        if (escludi_id is None or getattr(e, "id", None) != escludi_id)
        and intervalli_sovrapposti(inizio, fine, e.inizio, e.fine)
    ]


def si_sovrappone(inizio: datetime, fine: datetime, esistenti: Iterable[Intervallo]) -> bool:
    return any(intervalli_sovrapposti(inizio, fine, e.inizio, e.fine) for e in esistenti)


def _del_giorno(giorno: date, esistenti: Iterable[Intervallo]) -> list:
    return [e for e in esistenti if e.inizio.date() == giorno]


def slot_liberi(
    giorno: date,
    esistenti: Iterable[Intervallo],
    granularita_minuti: int = 30,
    ora_inizio: int = 7,
    ora_fine: int = 22,
    durata_minuti: int = 60,
) -> list[Slot]:
    """
    Slot allineati alla granularità tra `ora_inizio` e `ora_fine` il cui intervallo
    di `durata_minuti` non tocca nessun appuntamento del giorno.
    Ogni slot è valutato da solo: due slot restituiti possono sovrapporsi tra loro.
    """
    if granularita_minuti <= 0 or durata_minuti <= 0:
        raise ValueError("Granularità e durata devono essere positive.")

    del_giorno = _del_giorno(giorno, esistenti)
    apertura = datetime.combine(giorno, datetime.min.time()) + timedelta(hours=ora_inizio)
    chiusura = datetime.combine(giorno, datetime.min.time()) + timedelta(hours=ora_fine)
    passo = timedelta(minutes=granularita_minuti)
    durata = timedelta(minutes=durata_minuti)

    liberi: list[Slot] = []
    corrente = apertura
    while corrente < chiusura:
        fine_slot = corrente + durata
        if not si_sovrappone(corrente, fine_slot, del_giorno):
            liberi.append(Slot(corrente, fine_slot))
        corrente += passo
    return liberi


def previsione_disponibilita(
    giorno: date,
    esistenti: Iterable[Intervallo],
    ora_inizio: int = 7,
    ora_fine: int = 22,
) -> PrevisioneDisponibilita:
    del_giorno = _del_giorno(giorno, esistenti)
    minuti_totali = (ora_fine - ora_inizio) * 60
    occupati = sum(int((e.fine - e.inizio).total_seconds() // 60) for e in del_giorno)
    disponibili = minuti_totali - occupati
    tasso = (occupati / minuti_totali) * 100 if minuti_totali else 0.0

    if tasso > 40:
        raccomandazione = "ALTA OCCUPAZIONE"
    elif tasso > 20:
        raccomandazione = "MEDIA OCCUPAZIONE"
    else:
        raccomandazione = "BASSA OCCUPAZIONE"

    return PrevisioneDisponibilita(
        totale_appuntamenti=len(del_giorno),
        minuti_occupati=occupati,
        minuti_disponibili=disponibili,
        tasso_occupazione=tasso,
        slot_disponibili=max(disponibili, 0) // 60,
        raccomandazione=raccomandazione,
    )
