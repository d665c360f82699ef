from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Iterable, Mapping

from .config import Settings, settings as default_settings
from .db import Base, engine
from .errors import (
    AppointmentNotFound,
    InvalidDuration,
    InvalidLocation,
    InvalidTimestamp,
    MissingRecipient,
    RecurrenceRangeInvalid,
    SlotOccupied,
    StoreFailure,
)
from .messaggi import contesto_per, render_messaggio, scegli_modello
from .messaging import MessagingDispatcher, normalizza_telefono
from .models import (
    Appuntamento,
    Luogo,
    StatoAppuntamento,
    TipoPagamento,
    TipoTrattamento,
)
from .pricing import parse_importo, prezzo_effettivo, risolvi_prezzo
from .ricorrenze import controlla_limite, crea_bozze, genera_occorrenze, valida_ricorrenza
from .slot import PrevisioneDisponibilita, Slot, previsione_disponibilita, slot_liberi, trova_conflitti
from .stato import imposta_pagato, imposta_stato, normalizza_stato, toggle_eseguito
from .store import AppointmentStore, BozzaAppuntamento

logger = logging.getLogger(__name__)

MIN_LUNGHEZZA_INDIRIZZO = 5

# distingue "campo non passato" da "campo svuotato" negli aggiornamenti parziali
NON_IMPOSTATO: Any = object()


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Crea le tabelle se non esistono."""
    Base.metadata.create_all(bind=engine)


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class RichiestaRicorrenza:
    giorni_settimana: frozenset[int]
    fino_a: date


@dataclass(frozen=True)
class RichiestaAppuntamento:
    paziente_id: str
    inizio: datetime
    fine: datetime
    luogo: Luogo = Luogo.STUDIO
    sede: str | None = None
    indirizzo_domicilio: str | None = None
    tipo_trattamento: TipoTrattamento = TipoTrattamento.SEDUTA
    tipo_pagamento: TipoPagamento = TipoPagamento.FATTURATO
    # prezzo inserito a mano dall'operatore (testo o numero); None = tariffario
    prezzo: str | int | float | Decimal | None = None
    note: str | None = None
    ricorrenza: RichiestaRicorrenza | None = None


@dataclass(frozen=True)
class EsitoCreazione:
    ok: bool
    appuntamenti_ids: tuple[str, ...]
    richiesti: int
    messaggio: str

    @property
    def creati(self) -> int:
        return len(self.appuntamenti_ids)


@dataclass(frozen=True)
class Riepilogo:
    totale: int
    eseguiti: int
    confermati: int
    prenotati: int
    incasso: Decimal


@dataclass(frozen=True)
class Promemoria:
    appuntamento_id: str
    telefono: str
    messaggio: str
    url: str | None = None


@dataclass(frozen=True)
class FiltriAgenda:
    stato: StatoAppuntamento | None = None
    luogo: Luogo | None = None
    tipo_trattamento: TipoTrattamento | None = None
    tipo_pagamento: TipoPagamento | None = None
    importo_min: Decimal | None = None
    importo_max: Decimal | None = None


def intervallo_giorno(giorno: date) -> tuple[datetime, datetime]:
    inizio = datetime.combine(giorno, datetime.min.time())
    return inizio, inizio + timedelta(days=1)


def inizio_settimana(giorno: date) -> date:
    """Lunedì della settimana ISO che contiene `giorno`."""
    return giorno - timedelta(days=giorno.weekday())


def _valida_durata(inizio: datetime, fine: datetime) -> None:
    # l'agenda salva ora locale senza fuso: un orario "aware" non è confrontabile
    if inizio.tzinfo is not None or fine.tzinfo is not None:
        raise InvalidTimestamp()
    if fine <= inizio:
        raise InvalidDuration()


def _risolvi_luogo(richiesta: RichiestaAppuntamento, cfg: Settings) -> tuple[str | None, str | None]:
    """(sede, indirizzo_domicilio): solo uno dei due è valorizzato."""
    if richiesta.luogo == Luogo.STUDIO:
        sede = (richiesta.sede or "").strip() or cfg.sede_predefinita
        return sede, None

    indirizzo = (richiesta.indirizzo_domicilio or "").strip()
    if len(indirizzo) < MIN_LUNGHEZZA_INDIRIZZO:
        raise InvalidLocation(
            f"Inserisci un indirizzo domicilio valido (min {MIN_LUNGHEZZA_INDIRIZZO} caratteri)."
        )
    return None, indirizzo


def _carica(store: AppointmentStore, appuntamento_id: str) -> Appuntamento:
    app = store.get_appuntamento(appuntamento_id)
    if app is None:
        raise AppointmentNotFound(appuntamento_id)
    return app


def _attivi(appuntamenti: Iterable[Appuntamento]) -> list[Appuntamento]:
    # gli annullati restano in agenda per storico ma non occupano l'orario
    return [a for a in appuntamenti if a.stato != StatoAppuntamento.ANNULLATO]


def _conflitti(
    store: AppointmentStore,
    candidati: list[tuple[datetime, datetime]],
    escludi_id: str | None = None,
) -> list[Appuntamento]:
    """Legge gli appuntamenti dei giorni coinvolti e restituisce quelli in conflitto."""
    if not candidati:
        return []
    da = datetime.combine(min(c[0] for c in candidati).date(), datetime.min.time())
    a = datetime.combine(max(c[0] for c in candidati).date(), datetime.min.time()) + timedelta(days=1)
    esistenti = _attivi(store.lista_appuntamenti(da, a))

    trovati: dict[str, Appuntamento] = {}
    for inizio, fine in candidati:
        for c in trova_conflitti(inizio, fine, esistenti, escludi_id=escludi_id):
            trovati.setdefault(c.id, c)
    return sorted(trovati.values(), key=lambda a: a.inizio)


# =========================
# Creazione (singola / ricorrente)
# =========================
def crea_appuntamenti(
    store: AppointmentStore,
    richiesta: RichiestaAppuntamento,
    consenti_sovrapposizioni: bool = False,
    cfg: Settings = default_settings,
) -> EsitoCreazione:
    """
    Use case: creare un appuntamento, singolo o ricorrente.
    - valida durata, luogo e (se ricorrente) intervallo e giorni
    - risolve il prezzo (override operatore o tariffario)
    - genera le occorrenze e rifiuta l'intera richiesta oltre il limite
    - verifica conflitti su tutte le occorrenze prima di scrivere
    - salva in ordine cronologico; al primo errore si ferma e riporta quanti
      appuntamenti sono stati creati (nessun rollback dei precedenti)
    """
    _valida_durata(richiesta.inizio, richiesta.fine)
    sede, indirizzo = _risolvi_luogo(richiesta, cfg)

    ric = richiesta.ricorrenza
    if ric is not None:
        valida_ricorrenza(richiesta.inizio, ric.fino_a, ric.giorni_settimana)

    importo = risolvi_prezzo(richiesta.tipo_trattamento, richiesta.tipo_pagamento, richiesta.prezzo)

    bozza = BozzaAppuntamento(
        paziente_id=richiesta.paziente_id,
        inizio=richiesta.inizio,
        fine=richiesta.fine,
        luogo=richiesta.luogo,
        sede=sede,
        indirizzo_domicilio=indirizzo,
        tipo_trattamento=richiesta.tipo_trattamento,
        tipo_pagamento=richiesta.tipo_pagamento,
        importo=importo,
        note=(richiesta.note or "").strip() or None,
    )

    if ric is None:
        bozze = [bozza]
    else:
        occorrenze = genera_occorrenze(richiesta.inizio, ric.fino_a, ric.giorni_settimana)
        controlla_limite(occorrenze)
        if not occorrenze:
            raise RecurrenceRangeInvalid("Nessuna occorrenza nel periodo e nei giorni selezionati.")
        bozze = crea_bozze(bozza, occorrenze)

    if not consenti_sovrapposizioni:
        conflitti = _conflitti(store, [(b.inizio, b.fine) for b in bozze])
        if conflitti:
            raise SlotOccupied(conflitti)

    creati: list[str] = []
    for b in bozze:
        try:
            app = store.crea_appuntamento(b)
        except StoreFailure as e:
            logger.warning(
                "Creazione interrotta",
                extra={"creati": len(creati), "richiesti": len(bozze), "paziente_id": richiesta.paziente_id},
            )
            return EsitoCreazione(
                ok=False,
                appuntamenti_ids=tuple(creati),
                richiesti=len(bozze),
                messaggio=f"Creati {len(creati)} appuntamenti su {len(bozze)}. {e.messaggio}",
            )
        creati.append(app.id)

    logger.info("Appuntamenti creati", extra={"creati": len(creati), "paziente_id": richiesta.paziente_id})
    messaggio = "Appuntamento creato." if len(creati) == 1 else f"Creati {len(creati)} appuntamenti."
    return EsitoCreazione(ok=True, appuntamenti_ids=tuple(creati), richiesti=len(bozze), messaggio=messaggio)


def duplica_appuntamento(
    store: AppointmentStore,
    appuntamento_id: str,
    nuovo_inizio: datetime,
    consenti_sovrapposizioni: bool = False,
) -> Appuntamento:
    """Copia luogo, trattamento e prezzo su un nuovo orario; il duplicato nasce PRENOTATO e non pagato."""
    orig = _carica(store, appuntamento_id)
    durata = orig.fine - orig.inizio
    nuova_fine = nuovo_inizio + durata
    _valida_durata(nuovo_inizio, nuova_fine)

    if not consenti_sovrapposizioni:
        conflitti = _conflitti(store, [(nuovo_inizio, nuova_fine)])
        if conflitti:
            raise SlotOccupied(conflitti)

    app = store.crea_appuntamento(
        BozzaAppuntamento(
            paziente_id=orig.paziente_id,
            inizio=nuovo_inizio,
            fine=nuova_fine,
            luogo=orig.luogo,
            sede=orig.sede,
            indirizzo_domicilio=orig.indirizzo_domicilio,
            tipo_trattamento=orig.tipo_trattamento,
            tipo_pagamento=orig.tipo_pagamento,
            importo=orig.importo,
            note=orig.note,
        )
    )
    logger.info("Appuntamento duplicato", extra={"origine_id": appuntamento_id, "appuntamento_id": app.id})
    return app


# =========================
# Spostamento / modifica
# =========================
def sposta_appuntamento(
    store: AppointmentStore,
    appuntamento_id: str,
    nuovo_inizio: datetime,
    consenti_sovrapposizioni: bool = False,
) -> Appuntamento:
    """Trascinamento in agenda: cambia solo inizio/fine, la durata resta la stessa."""
    app = _carica(store, appuntamento_id)
    nuova_fine = nuovo_inizio + (app.fine - app.inizio)
    _valida_durata(nuovo_inizio, nuova_fine)

    if not consenti_sovrapposizioni:
        conflitti = _conflitti(store, [(nuovo_inizio, nuova_fine)], escludi_id=appuntamento_id)
        if conflitti:
            raise SlotOccupied(conflitti)

    aggiornato = store.aggiorna_appuntamento(appuntamento_id, {"inizio": nuovo_inizio, "fine": nuova_fine})
    logger.info("Appuntamento spostato", extra={"appuntamento_id": appuntamento_id})
    return aggiornato


def riprogramma_appuntamento(
    store: AppointmentStore,
    appuntamento_id: str,
    giorno: date,
    ora: time,
    durata_minuti: int,
    consenti_sovrapposizioni: bool = False,
) -> Appuntamento:
    """Modifica da scheda: nuovo giorno, ora di inizio e durata."""
    inizio = datetime.combine(giorno, ora.replace(second=0, microsecond=0))
    fine = inizio + timedelta(minutes=durata_minuti)
    _valida_durata(inizio, fine)
    _carica(store, appuntamento_id)

    if not consenti_sovrapposizioni:
        conflitti = _conflitti(store, [(inizio, fine)], escludi_id=appuntamento_id)
        if conflitti:
            raise SlotOccupied(conflitti)

    return store.aggiorna_appuntamento(appuntamento_id, {"inizio": inizio, "fine": fine})


def aggiorna_dettagli(
    store: AppointmentStore,
    appuntamento_id: str,
    note: str | None = NON_IMPOSTATO,
    prezzo: str | int | float | Decimal | None = NON_IMPOSTATO,
    tipo_trattamento: TipoTrattamento | None = None,
    tipo_pagamento: TipoPagamento | None = None,
) -> Appuntamento:
    """
    Note, prezzo e tipologia. Un prezzo vuoto o None torna al tariffario
    (importo NULL); un prezzo non valido solleva InvalidAmount.
    """
    _carica(store, appuntamento_id)
    campi: dict[str, Any] = {}
    if note is not NON_IMPOSTATO:
        campi["note"] = (note or "").strip() or None
    if prezzo is not NON_IMPOSTATO:
        campi["importo"] = parse_importo(prezzo)
    if tipo_trattamento is not None:
        campi["tipo_trattamento"] = tipo_trattamento
    if tipo_pagamento is not None:
        campi["tipo_pagamento"] = tipo_pagamento
    if not campi:
        return store.get_appuntamento(appuntamento_id)
    return store.aggiorna_appuntamento(appuntamento_id, campi)


# =========================
# Stato / pagamento
# =========================
def cambia_stato(
    store: AppointmentStore,
    appuntamento_id: str,
    nuovo_stato: StatoAppuntamento | str,
    pagato: bool | None = None,
) -> Appuntamento:
    app = _carica(store, appuntamento_id)
    campi = imposta_stato(app, nuovo_stato, pagato)
    aggiornato = store.aggiorna_appuntamento(appuntamento_id, campi)
    logger.info(
        "Stato aggiornato",
        extra={"appuntamento_id": appuntamento_id, "stato": aggiornato.stato.value, "pagato": aggiornato.pagato},
    )
    return aggiornato


def segna_pagato(store: AppointmentStore, appuntamento_id: str, valore: bool = True) -> Appuntamento:
    app = _carica(store, appuntamento_id)
    campi = imposta_pagato(app, valore)
    return store.aggiorna_appuntamento(appuntamento_id, campi)


def alterna_eseguito(store: AppointmentStore, appuntamento_id: str) -> Appuntamento:
    app = _carica(store, appuntamento_id)
    campi = toggle_eseguito(app)
    return store.aggiorna_appuntamento(appuntamento_id, campi)


def elimina_appuntamento(store: AppointmentStore, appuntamento_id: str) -> None:
    """Cancellazione definitiva: non esiste uno stato 'eliminato'."""
    store.elimina_appuntamento(appuntamento_id)
    logger.info("Appuntamento eliminato", extra={"appuntamento_id": appuntamento_id})


# =========================
# Agenda / disponibilità
# =========================
def agenda_giornaliera(store: AppointmentStore, giorno: date, includi_annullati: bool = True) -> list[Appuntamento]:
    da, a = intervallo_giorno(giorno)
    appuntamenti = store.lista_appuntamenti(da, a)
    return appuntamenti if includi_annullati else _attivi(appuntamenti)


def agenda_settimanale(store: AppointmentStore, giorno: date) -> list[Appuntamento]:
    lunedi = datetime.combine(inizio_settimana(giorno), datetime.min.time())
    return store.lista_appuntamenti(lunedi, lunedi + timedelta(days=7))


def slot_liberi_giorno(store: AppointmentStore, giorno: date, cfg: Settings = default_settings) -> list[Slot]:
    return slot_liberi(
        giorno,
        agenda_giornaliera(store, giorno, includi_annullati=False),
        granularita_minuti=cfg.granularita_slot_minuti,
        ora_inizio=cfg.ora_inizio_giornata,
        ora_fine=cfg.ora_fine_giornata,
        durata_minuti=cfg.durata_slot_minuti,
    )


def previsione_giorno(
    store: AppointmentStore, giorno: date, cfg: Settings = default_settings
) -> PrevisioneDisponibilita:
    return previsione_disponibilita(
        giorno,
        agenda_giornaliera(store, giorno, includi_annullati=False),
        ora_inizio=cfg.ora_inizio_giornata,
        ora_fine=cfg.ora_fine_giornata,
    )


def riepilogo(appuntamenti: Iterable[Appuntamento]) -> Riepilogo:
    """Conteggi per stato e incasso degli appuntamenti eseguiti."""
    lista = list(appuntamenti)
    eseguiti = [a for a in lista if a.stato == StatoAppuntamento.ESEGUITO]
    return Riepilogo(
        totale=len(lista),
        eseguiti=len(eseguiti),
        confermati=sum(1 for a in lista if a.stato == StatoAppuntamento.CONFERMATO),
        prenotati=sum(1 for a in lista if a.stato == StatoAppuntamento.PRENOTATO),
        incasso=sum((prezzo_effettivo(a) for a in eseguiti), Decimal("0")),
    )


def incasso_previsto_settimana(store: AppointmentStore, giorno: date) -> Decimal:
    """Somma dei prezzi di tutti gli appuntamenti non annullati della settimana."""
    return sum((prezzo_effettivo(a) for a in _attivi(agenda_settimanale(store, giorno))), Decimal("0"))


def filtra_appuntamenti(appuntamenti: Iterable[Appuntamento], filtri: FiltriAgenda) -> list[Appuntamento]:
    risultato = list(appuntamenti)
    if filtri.stato is not None:
        stato = normalizza_stato(filtri.stato)
        risultato = [a for a in risultato if a.stato == stato]
    if filtri.luogo is not None:
        risultato = [a for a in risultato if a.luogo == filtri.luogo]
    if filtri.tipo_trattamento is not None:
        risultato = [a for a in risultato if a.tipo_trattamento == filtri.tipo_trattamento]
    if filtri.tipo_pagamento is not None:
        risultato = [a for a in risultato if a.tipo_pagamento == filtri.tipo_pagamento]
    if filtri.importo_min is not None:
        risultato = [a for a in risultato if prezzo_effettivo(a) >= filtri.importo_min]
    if filtri.importo_max is not None:
        risultato = [a for a in risultato if prezzo_effettivo(a) <= filtri.importo_max]
    return risultato


# =========================
# Promemoria
# =========================
def prepara_promemoria(
    store: AppointmentStore,
    appuntamento_id: str,
    adesso: datetime,
    nome_modello: str | None = None,
    indirizzi_sedi: Mapping[str, str] | None = None,
) -> Promemoria:
    """
    Compone il messaggio senza inviarlo.
    Se i modelli non sono leggibili si usa il testo minimo: un problema di
    configurazione non deve bloccare l'invio dei promemoria.
    """
    app = _carica(store, appuntamento_id)
    paziente = app.paziente or store.get_paziente(app.paziente_id)
    if paziente is None or not paziente.telefono:
        raise MissingRecipient()
    telefono = normalizza_telefono(paziente.telefono)

    try:
        modelli = store.lista_modelli_messaggio()
    except StoreFailure:
        logger.warning("Modelli messaggio non disponibili, uso testo minimo")
        modelli = []
    modello = scegli_modello(modelli, nome_modello)

    rubrica = indirizzi_sedi if indirizzi_sedi is not None else default_settings.indirizzi_sedi
    ctx = contesto_per(app, paziente.nome, adesso, rubrica)
    testo = render_messaggio(modello.testo if modello else None, ctx)
    return Promemoria(appuntamento_id=appuntamento_id, telefono=telefono, messaggio=testo)


def invia_promemoria(
    store: AppointmentStore,
    dispatcher: MessagingDispatcher,
    appuntamento_id: str,
    adesso: datetime,
    nome_modello: str | None = None,
) -> Promemoria:
    p = prepara_promemoria(store, appuntamento_id, adesso, nome_modello)
    url = dispatcher.invia(p.telefono, p.messaggio)
    segna_promemoria_inviato(store, appuntamento_id, adesso)
    return Promemoria(appuntamento_id=p.appuntamento_id, telefono=p.telefono, messaggio=p.messaggio, url=url)


def segna_promemoria_inviato(store: AppointmentStore, appuntamento_id: str, quando: datetime) -> Appuntamento:
    """Registra l'invio del promemoria; un secondo invio aggiorna la data."""
    aggiornato = store.aggiorna_appuntamento(appuntamento_id, {"promemoria_inviato_il": quando})
    logger.info("Promemoria segnato come inviato", extra={"appuntamento_id": appuntamento_id})
    return aggiornato
