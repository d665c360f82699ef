"""
Composizione dei messaggi di promemoria/conferma.

Segnaposto supportati: {nome}, {data_relativa}, {ora}, {luogo}.
La sostituzione è letterale: segnaposto sconosciuti restano nel testo così come
sono. L'orologio (`adesso`) e la rubrica delle sedi sono parametri espliciti.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Mapping, Sequence

from .config import DEFAULT_CLINIC_ADDRESS
from .models import Luogo

SEGNAPOSTO = ("{nome}", "{data_relativa}", "{ora}", "{luogo}")
_RE_SEGNAPOSTO = re.compile(r"\{(nome|data_relativa|ora|luogo)\}")

GIORNI = ("lunedì", "martedì", "mercoledì", "giovedì", "venerdì", "sabato", "domenica")
MESI = (
    "gennaio",
    "febbraio",
    "marzo",
    "aprile",
    "maggio",
    "giugno",
    "luglio",
    "agosto",
    "settembre",
    "ottobre",
    "novembre",
    "dicembre",
)

NOME_GENERICO = "Cliente"

MODELLO_PROMEMORIA = (
    "Buongiorno {nome},\n\n"
    "Le ricordiamo il suo appuntamento di {data_relativa} alle ore {ora}.\n\n"
    "📍 {luogo}\n\n"
    "Cordiali saluti"
)

MODELLO_CONFERMA = (
    "Grazie per averci scelto.\n"
    "Ricordiamo il prossimo appuntamento fissato per {data_relativa} alle {ora}.\n\n"
    "📍 {luogo}\n\n"
    "A presto"
)


@dataclass(frozen=True)
class ContestoMessaggio:
    nome: str
    data_relativa: str
    ora: str
    luogo: str


def etichetta_data_relativa(giorno: date | datetime, adesso: datetime) -> str:
    """Restituisce "oggi", "domani" oppure la data estesa (es. "lunedì 12 ottobre")."""
    d = giorno.date() if isinstance(giorno, datetime) else giorno
    oggi = adesso.date()
    if d == oggi:
        return "oggi"
    if d == oggi + timedelta(days=1):
        return "domani"
    return f"{GIORNI[d.weekday()]} {d.day} {MESI[d.month - 1]}"


def formatta_ora(istante: datetime) -> str:
    return istante.strftime("%H:%M")


def descrivi_luogo(
    luogo: Luogo,
    sede: str | None,
    indirizzo_domicilio: str | None,
    indirizzi_sedi: Mapping[str, str] | None = None,
) -> str:
    if luogo == Luogo.DOMICILIO:
        return f"Presso il suo domicilio ({indirizzo_domicilio or ''})"
    rubrica = indirizzi_sedi or {}
    if sede and sede in rubrica:
        return rubrica[sede]
    return sede or DEFAULT_CLINIC_ADDRESS


def primo_nome(nome_paziente: str | None) -> str:
    parti = (nome_paziente or "").split()
    return parti[0] if parti else NOME_GENERICO


def contesto_per(
    app,
    nome_paziente: str | None,
    adesso: datetime,
    indirizzi_sedi: Mapping[str, str] | None = None,
) -> ContestoMessaggio:
    return ContestoMessaggio(
        nome=primo_nome(nome_paziente),
        data_relativa=etichetta_data_relativa(app.inizio, adesso),
        ora=formatta_ora(app.inizio),
        luogo=descrivi_luogo(app.luogo, app.sede, app.indirizzo_domicilio, indirizzi_sedi),
    )


def messaggio_minimo(ctx: ContestoMessaggio) -> str:
    return (
        f"Buongiorno {ctx.nome}, le ricordiamo il suo appuntamento di "
        f"{ctx.data_relativa} alle ore {ctx.ora}. Luogo: {ctx.luogo}."
    )


def render_messaggio(modello: str | None, ctx: ContestoMessaggio) -> str:
    """Senza modello (archivio vuoto o non raggiungibile) usa la frase minima."""
    if not modello:
        return messaggio_minimo(ctx)
    valori = {
        "nome": ctx.nome,
        "data_relativa": ctx.data_relativa,
        "ora": ctx.ora,
        "luogo": ctx.luogo,
    }
    # un solo passaggio: i valori inseriti non vengono riletti come segnaposto
    return _RE_SEGNAPOSTO.sub(lambda m: valori[m.group(1)], modello)


def scegli_modello(modelli: Sequence, nome: str | None = None):
    """Per nome se richiesto e presente, altrimenti il predefinito, altrimenti il primo."""
    if not modelli:
        return None
    if nome:
        for m in modelli:
            if m.nome == nome:
                return m
    for m in modelli:
        if m.predefinito:
            return m
    return modelli[0]
