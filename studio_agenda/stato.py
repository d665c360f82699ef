"""
Ciclo di vita dell'appuntamento: stato e pagamento.

Qualsiasi stato può passare a qualsiasi altro per scelta dell'operatore; non
esiste avanzamento automatico. L'unico vincolo è sul pagamento: `pagato` può
valere True solo con stato ESEGUITO.

Le funzioni modificano l'oggetto ricevuto e restituiscono i campi cambiati,
pronti per `AppointmentStore.aggiorna_appuntamento`.
"""
from __future__ import annotations

from typing import Any

from .errors import IllegalPaymentState, IllegalStatus
from .models import StatoAppuntamento

# "no_show" è usato da una delle viste mobile con lo stesso significato di "not_paid"
SINONIMI_STATO = {"no_show": StatoAppuntamento.NON_PAGATO}

ETICHETTE_STATO = {
    StatoAppuntamento.PRENOTATO: "Prenotato",
    StatoAppuntamento.CONFERMATO: "Confermato",
    StatoAppuntamento.ESEGUITO: "Eseguito",
    StatoAppuntamento.ANNULLATO: "Annullato",
    StatoAppuntamento.NON_PAGATO: "Non pagata",
}


def normalizza_stato(valore: StatoAppuntamento | str) -> StatoAppuntamento:
    if isinstance(valore, StatoAppuntamento):
        return valore
    testo = str(valore or "").strip().lower()
    if testo in SINONIMI_STATO:
        return SINONIMI_STATO[testo]
    try:
        return StatoAppuntamento(testo)
    except ValueError as e:
        raise IllegalStatus(valore) from e


def imposta_stato(app, nuovo_stato: StatoAppuntamento | str, pagato: bool | None = None) -> dict[str, Any]:
    """
    Imposta lo stato. Se il nuovo stato non è ESEGUITO il pagamento viene azzerato,
    anche quando nella stessa richiesta si chiede pagato=True (vince lo stato).
    """
    stato = normalizza_stato(nuovo_stato)
    app.stato = stato
    if stato != StatoAppuntamento.ESEGUITO:
        app.pagato = False
    elif pagato is not None:
        app.pagato = bool(pagato)
    return {"stato": app.stato, "pagato": app.pagato}


def imposta_pagato(app, valore: bool) -> dict[str, Any]:
    if valore and app.stato != StatoAppuntamento.ESEGUITO:
        raise IllegalPaymentState()
    app.pagato = bool(valore)
    return {"pagato": app.pagato}


def toggle_eseguito(app) -> dict[str, Any]:
    """
    Alterna solo tra ESEGUITO e CONFERMATO.
    Passando a ESEGUITO il pagamento non viene segnato in automatico.
    """
    if app.stato == StatoAppuntamento.ESEGUITO:
        return imposta_stato(app, StatoAppuntamento.CONFERMATO)
    return imposta_stato(app, StatoAppuntamento.ESEGUITO)
