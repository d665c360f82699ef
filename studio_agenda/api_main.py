from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from studio_agenda.config import settings
from studio_agenda.errors import (
    AgendaError,
    AppointmentNotFound,
    SlotOccupied,
    StoreFailure,
)
from studio_agenda.logging_config import configure_logging
from studio_agenda.messaging import url_whatsapp
from studio_agenda.models import Appuntamento, Luogo, TipoPagamento, TipoTrattamento
from studio_agenda.pricing import prezzo_effettivo, risolvi_prezzo
from studio_agenda.seed import seed_base
from studio_agenda.services import (
    RichiestaAppuntamento,
    RichiestaRicorrenza,
    aggiorna_dettagli,
    agenda_giornaliera,
    agenda_settimanale,
    alterna_eseguito,
    cambia_stato,
    crea_appuntamenti,
    duplica_appuntamento,
    elimina_appuntamento,
    incasso_previsto_settimana,
    init_db,
    prepara_promemoria,
    previsione_giorno,
    riepilogo,
    riprogramma_appuntamento,
    segna_pagato,
    segna_promemoria_inviato,
    slot_liberi_giorno,
    sposta_appuntamento,
)
from studio_agenda.stato import ETICHETTE_STATO
from studio_agenda.store import AppointmentStore, SqlAppointmentStore

app = FastAPI(title="Studio Agenda API", version="1.0.0")

_store = SqlAppointmentStore()


def get_store() -> AppointmentStore:
    return _store


def get_adesso() -> datetime:
    return datetime.now()



# Startup

@app.on_event("startup")
def startup() -> None:
    configure_logging(settings.log_level)
    # Crea tabelle e seed base (idempotente)
    init_db()
    seed_base()



# Errori di dominio -> risposta leggibile

def _status_per(errore: AgendaError) -> int:
    if isinstance(errore, AppointmentNotFound):
        return 404
    if isinstance(errore, SlotOccupied):
        return 409
    if isinstance(errore, StoreFailure):
        return 503
    return 400


@app.exception_handler(AgendaError)
def agenda_error_handler(request: Request, exc: AgendaError) -> JSONResponse:
    return JSONResponse(
        status_code=_status_per(exc),
        content={"ok": False, "errore": type(exc).__name__, "messaggio": exc.messaggio},
    )



# Schemi

class PazienteCreateIn(BaseModel):
    nome: str = Field(..., min_length=1)
    cognome: str = Field(..., min_length=1)
    telefono: str | None = None


class RicorrenzaIn(BaseModel):
    # lunedì=1 ... sabato=6
    giorni_settimana: list[int] = Field(..., min_length=1)
    fino_a: date


class AppuntamentoCreateIn(BaseModel):
    paziente_id: str
    inizio: datetime
    fine: datetime
    luogo: Luogo = Luogo.STUDIO
    sede: str | None = None
    indirizzo_domicilio: str | None = None
    tipo_trattamento: TipoTrattamento = TipoTrattamento.SEDUTA
    tipo_pagamento: TipoPagamento = TipoPagamento.FATTURATO
    # testo ("37,50") o numero: la validazione è in parse_importo
    prezzo: str | Decimal | None = None
    note: str | None = None
    ricorrenza: RicorrenzaIn | None = None
    consenti_sovrapposizioni: bool = False


class NuovoInizioIn(BaseModel):
    inizio: datetime
    consenti_sovrapposizioni: bool = False


class RiprogrammaIn(BaseModel):
    giorno: date
    ora: time
    durata_minuti: int = Field(..., gt=0)
    consenti_sovrapposizioni: bool = False


class StatoIn(BaseModel):
    stato: str
    pagato: bool | None = None


class PagamentoIn(BaseModel):
    pagato: bool


class DettagliIn(BaseModel):
    note: str | None = None
    prezzo: str | Decimal | None = None
    tipo_trattamento: TipoTrattamento | None = None
    tipo_pagamento: TipoPagamento | None = None


def _importo(v: Decimal | None) -> float | None:
    return float(v) if v is not None else None


def appuntamento_flat(a: Appuntamento) -> dict[str, Any]:
    paz = a.paziente
    return {
        "id": a.id,
        "paziente_id": a.paziente_id,
        "paziente": f"{paz.cognome} {paz.nome}" if paz else None,
        "inizio": a.inizio.isoformat(),
        "fine": a.fine.isoformat(),
        "stato": a.stato.value,
        "stato_etichetta": ETICHETTE_STATO[a.stato],
        "pagato": a.pagato,
        "luogo": a.luogo.value,
        "sede": a.sede,
        "indirizzo_domicilio": a.indirizzo_domicilio,
        "tipo_trattamento": a.tipo_trattamento.value,
        "tipo_pagamento": a.tipo_pagamento.value,
        "importo": _importo(a.importo),
        "prezzo": _importo(prezzo_effettivo(a)),
        "note": a.note,
        "promemoria_inviato_il": a.promemoria_inviato_il.isoformat() if a.promemoria_inviato_il else None,
    }



# Pazienti (dati minimi per promemoria)

@app.get("/api/pazienti")
def api_pazienti(store: SqlAppointmentStore = Depends(get_store)) -> list[dict]:
    return [
        {"id": p.id, "nome": p.nome, "cognome": p.cognome, "telefono": p.telefono}
        for p in store.lista_pazienti()
    ]


@app.post("/api/pazienti")
def api_crea_paziente(payload: PazienteCreateIn, store: SqlAppointmentStore = Depends(get_store)) -> dict[str, Any]:
    pid = store.crea_paziente(payload.nome, payload.cognome, payload.telefono)
    return {"ok": True, "paziente_id": pid}



# Appuntamenti

@app.get("/api/appuntamenti")
def api_appuntamenti(
    da: datetime = Query(...),
    a: datetime = Query(...),
    store: AppointmentStore = Depends(get_store),
) -> list[dict]:
    return [appuntamento_flat(x) for x in store.lista_appuntamenti(da, a)]


@app.post("/api/appuntamenti")
def api_crea_appuntamento(payload: AppuntamentoCreateIn, store: AppointmentStore = Depends(get_store)) -> dict[str, Any]:
    ricorrenza = None
    if payload.ricorrenza is not None:
        ricorrenza = RichiestaRicorrenza(
            giorni_settimana=frozenset(payload.ricorrenza.giorni_settimana),
            fino_a=payload.ricorrenza.fino_a,
        )
    esito = crea_appuntamenti(
        store,
        RichiestaAppuntamento(
            paziente_id=payload.paziente_id,
            inizio=payload.inizio,
            fine=payload.fine,
            luogo=payload.luogo,
            sede=payload.sede,
            indirizzo_domicilio=payload.indirizzo_domicilio,
            tipo_trattamento=payload.tipo_trattamento,
            tipo_pagamento=payload.tipo_pagamento,
            prezzo=payload.prezzo,
            note=payload.note,
            ricorrenza=ricorrenza,
        ),
        consenti_sovrapposizioni=payload.consenti_sovrapposizioni,
    )
    return {
        "ok": esito.ok,
        "messaggio": esito.messaggio,
        "appuntamenti_ids": list(esito.appuntamenti_ids),
        "creati": esito.creati,
        "richiesti": esito.richiesti,
    }


@app.patch("/api/appuntamenti/{appuntamento_id}")
def api_aggiorna_dettagli(
    appuntamento_id: str, payload: DettagliIn, store: AppointmentStore = Depends(get_store)
) -> dict[str, Any]:
    campi = payload.model_dump(include=payload.model_fields_set)
    return appuntamento_flat(aggiorna_dettagli(store, appuntamento_id, **campi))


@app.delete("/api/appuntamenti/{appuntamento_id}")
def api_elimina(appuntamento_id: str, store: AppointmentStore = Depends(get_store)) -> dict[str, Any]:
    elimina_appuntamento(store, appuntamento_id)
    return {"ok": True}


@app.post("/api/appuntamenti/{appuntamento_id}/duplica")
def api_duplica(
    appuntamento_id: str, payload: NuovoInizioIn, store: AppointmentStore = Depends(get_store)
) -> dict[str, Any]:
    return appuntamento_flat(
        duplica_appuntamento(store, appuntamento_id, payload.inizio, payload.consenti_sovrapposizioni)
    )


@app.post("/api/appuntamenti/{appuntamento_id}/sposta")
def api_sposta(
    appuntamento_id: str, payload: NuovoInizioIn, store: AppointmentStore = Depends(get_store)
) -> dict[str, Any]:
    return appuntamento_flat(
        sposta_appuntamento(store, appuntamento_id, payload.inizio, payload.consenti_sovrapposizioni)
    )


@app.post("/api/appuntamenti/{appuntamento_id}/riprogramma")
def api_riprogramma(
    appuntamento_id: str, payload: RiprogrammaIn, store: AppointmentStore = Depends(get_store)
) -> dict[str, Any]:
    return appuntamento_flat(
        riprogramma_appuntamento(
            store,
            appuntamento_id,
            payload.giorno,
            payload.ora,
            payload.durata_minuti,
            payload.consenti_sovrapposizioni,
        )
    )


@app.put("/api/appuntamenti/{appuntamento_id}/stato")
def api_stato(appuntamento_id: str, payload: StatoIn, store: AppointmentStore = Depends(get_store)) -> dict[str, Any]:
    return appuntamento_flat(cambia_stato(store, appuntamento_id, payload.stato, payload.pagato))


@app.put("/api/appuntamenti/{appuntamento_id}/pagamento")
def api_pagamento(
    appuntamento_id: str, payload: PagamentoIn, store: AppointmentStore = Depends(get_store)
) -> dict[str, Any]:
    return appuntamento_flat(segna_pagato(store, appuntamento_id, payload.pagato))


@app.post("/api/appuntamenti/{appuntamento_id}/toggle-eseguito")
def api_toggle_eseguito(appuntamento_id: str, store: AppointmentStore = Depends(get_store)) -> dict[str, Any]:
    return appuntamento_flat(alterna_eseguito(store, appuntamento_id))


@app.get("/api/appuntamenti/{appuntamento_id}/promemoria")
def api_promemoria(
    appuntamento_id: str,
    modello: str | None = Query(None),
    store: AppointmentStore = Depends(get_store),
    adesso: datetime = Depends(get_adesso),
) -> dict[str, Any]:
    """
    Restituisce testo e link WhatsApp Web: l'apertura del link resta
    a carico dell'interfaccia dell'operatore.
    """
    p = prepara_promemoria(store, appuntamento_id, adesso, nome_modello=modello)
    return {
        "ok": True,
        "telefono": p.telefono,
        "messaggio": p.messaggio,
        "url": url_whatsapp(p.telefono, p.messaggio),
    }


@app.post("/api/appuntamenti/{appuntamento_id}/promemoria-inviato")
def api_promemoria_inviato(
    appuntamento_id: str,
    store: AppointmentStore = Depends(get_store),
    adesso: datetime = Depends(get_adesso),
) -> dict[str, Any]:
    return appuntamento_flat(segna_promemoria_inviato(store, appuntamento_id, adesso))



# Agenda / disponibilità

@app.get("/api/agenda")
def api_agenda(giorno: date = Query(...), store: AppointmentStore = Depends(get_store)) -> list[dict]:
    return [appuntamento_flat(a) for a in agenda_giornaliera(store, giorno)]


@app.get("/api/slot-liberi")
def api_slot_liberi(giorno: date = Query(...), store: AppointmentStore = Depends(get_store)) -> list[dict]:
    return [
        {"inizio": s.inizio.isoformat(), "fine": s.fine.isoformat(), "ora": s.ora}
        for s in slot_liberi_giorno(store, giorno)
    ]


@app.get("/api/previsione")
def api_previsione(giorno: date = Query(...), store: AppointmentStore = Depends(get_store)) -> dict[str, Any]:
    p = previsione_giorno(store, giorno)
    return {
        "totale_appuntamenti": p.totale_appuntamenti,
        "minuti_occupati": p.minuti_occupati,
        "minuti_disponibili": p.minuti_disponibili,
        "tasso_occupazione": round(p.tasso_occupazione, 1),
        "slot_disponibili": p.slot_disponibili,
        "raccomandazione": p.raccomandazione,
    }


@app.get("/api/riepilogo")
def api_riepilogo(
    giorno: date = Query(...),
    vista: str = Query("giorno", pattern="^(giorno|settimana)$"),
    store: AppointmentStore = Depends(get_store),
) -> dict[str, Any]:
    appuntamenti = agenda_settimanale(store, giorno) if vista == "settimana" else agenda_giornaliera(store, giorno)
    r = riepilogo(appuntamenti)
    return {
        "totale": r.totale,
        "eseguiti": r.eseguiti,
        "confermati": r.confermati,
        "prenotati": r.prenotati,
        "incasso": float(r.incasso),
        "incasso_previsto_settimana": float(incasso_previsto_settimana(store, giorno)),
    }


@app.get("/api/prezzo")
def api_prezzo(
    tipo_trattamento: TipoTrattamento = Query(TipoTrattamento.SEDUTA),
    tipo_pagamento: TipoPagamento = Query(TipoPagamento.FATTURATO),
    override: str | None = Query(None),
) -> dict[str, Any]:
    return {"prezzo": float(risolvi_prezzo(tipo_trattamento, tipo_pagamento, override))}
