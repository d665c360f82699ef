from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Iterable

from .errors import InvalidDuration, RecurrenceRangeInvalid, RecurrenceTooLarge

# Limite di sicurezza: oltre questo numero la richiesta viene rifiutata per intero
MAX_OCCORRENZE = 200

# isoweekday(): lunedì=1 ... sabato=6, domenica=7
DOMENICA = 7
GIORNI_LAVORATIVI = frozenset(range(1, DOMENICA))


def _come_data(valore: date | datetime) -> date:
    return valore.date() if isinstance(valore, datetime) else valore


def genera_occorrenze(
    primo_inizio: datetime,
    fino_a: date | datetime,
    giorni_settimana: Iterable[int],
    limite: int | None = MAX_OCCORRENZE,
) -> list[datetime]:
    """
    Espande la prima occorrenza sui giorni richiesti fino a `fino_a` (incluso).

    - la domenica è sempre esclusa, anche se presente tra i giorni
    - ogni occorrenza mantiene l'orario esatto della prima
    - le occorrenze precedenti a `primo_inizio` vengono scartate
    - con `limite` l'espansione si ferma a `limite + 1` occorrenze: quanto basta
      a `controlla_limite` per rifiutare la richiesta
    """
    giorni = set(giorni_settimana) & GIORNI_LAVORATIVI
    if not giorni:
        return []
    ultimo_giorno = _come_data(fino_a)
    orario = primo_inizio.time()

    risultati: list[datetime] = []
    giorno = primo_inizio.date()
    while giorno <= ultimo_giorno:
        if giorno.isoweekday() in giorni:
            occorrenza = datetime.combine(giorno, orario)
            if occorrenza >= primo_inizio:
                risultati.append(occorrenza)
                if limite is not None and len(risultati) > limite:
                    break
        giorno += timedelta(days=1)
    return risultati


def valida_ricorrenza(primo_inizio: datetime, fino_a: date | datetime, giorni_settimana: Iterable[int]) -> None:
    giorni = set(giorni_settimana)
    if not giorni & GIORNI_LAVORATIVI:
        raise RecurrenceRangeInvalid("Seleziona almeno un giorno (lunedì-sabato) per la ricorrenza.")
    if _come_data(fino_a) < primo_inizio.date():
        raise RecurrenceRangeInvalid()


def controlla_limite(occorrenze: list[datetime], limite: int = MAX_OCCORRENZE) -> None:
    if len(occorrenze) > limite:
        raise RecurrenceTooLarge(len(occorrenze), limite)


def crea_bozze(bozza, occorrenze: list[datetime]) -> list:
    """
    Una bozza per ciascuna occorrenza: stessi campi della bozza iniziale,
    cambiano solo inizio e fine (la durata è quella della prima).
    """
    durata = bozza.fine - bozza.inizio
    if durata <= timedelta(0):
        raise InvalidDuration()
    return [replace(bozza, inizio=occ, fine=occ + durata) for occ in occorrenze]
