"""Stato dell'appuntamento e vincolo sul pagamento."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from studio_agenda.errors import IllegalPaymentState, IllegalStatus
from studio_agenda.models import StatoAppuntamento
from studio_agenda.stato import imposta_pagato, imposta_stato, normalizza_stato, toggle_eseguito


def _app(stato: StatoAppuntamento = StatoAppuntamento.PRENOTATO, pagato: bool = False):
    return SimpleNamespace(stato=stato, pagato=pagato)


def test_eseguito_e_pagato_poi_riaperto() -> None:
    app = _app()
    imposta_stato(app, StatoAppuntamento.ESEGUITO, pagato=True)
    assert app.stato == StatoAppuntamento.ESEGUITO
    assert app.pagato is True

    campi = imposta_stato(app, StatoAppuntamento.CONFERMATO)
    assert campi == {"stato": StatoAppuntamento.CONFERMATO, "pagato": False}


def test_pagato_richiesto_con_stato_diverso_da_eseguito_viene_ignorato() -> None:
    app = _app()
    imposta_stato(app, "confirmed", pagato=True)
    assert app.pagato is False


def test_eseguito_senza_pagato_mantiene_pagamento() -> None:
    app = _app(StatoAppuntamento.ESEGUITO, pagato=True)
    imposta_stato(app, StatoAppuntamento.ESEGUITO)
    assert app.pagato is True


def test_qualsiasi_transizione_ammessa() -> None:
    app = _app(StatoAppuntamento.ANNULLATO)
    imposta_stato(app, StatoAppuntamento.PRENOTATO)
    assert app.stato == StatoAppuntamento.PRENOTATO


def test_no_show_equivale_a_non_pagato() -> None:
    assert normalizza_stato("no_show") == StatoAppuntamento.NON_PAGATO
    assert normalizza_stato(" Done ") == StatoAppuntamento.ESEGUITO


def test_stato_sconosciuto() -> None:
    with pytest.raises(IllegalStatus):
        normalizza_stato("archiviato")


def test_pagato_solo_se_eseguito() -> None:
    app = _app(StatoAppuntamento.CONFERMATO)
    with pytest.raises(IllegalPaymentState):
        imposta_pagato(app, True)
    assert app.pagato is False

    assert imposta_pagato(app, False) == {"pagato": False}

    eseguito = _app(StatoAppuntamento.ESEGUITO)
    assert imposta_pagato(eseguito, True) == {"pagato": True}


def test_toggle_eseguito() -> None:
    app = _app(StatoAppuntamento.PRENOTATO)
    toggle_eseguito(app)
    assert app.stato == StatoAppuntamento.ESEGUITO
    assert app.pagato is False

    app.pagato = True
    toggle_eseguito(app)
    assert app.stato == StatoAppuntamento.CONFERMATO
    assert app.pagato is False
