"""Use case dell'agenda su archivio SQLite in memoria."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from studio_agenda.config import Settings
from studio_agenda.errors import (
    AppointmentNotFound,
    IllegalPaymentState,
    InvalidAmount,
    InvalidDuration,
    InvalidLocation,
    InvalidTimestamp,
    MissingRecipient,
    RecurrenceRangeInvalid,
    RecurrenceTooLarge,
    SlotOccupied,
    StoreFailure,
)
from studio_agenda.models import Luogo, ModelloMessaggio, StatoAppuntamento, TipoPagamento, TipoTrattamento
from studio_agenda.services import (
    FiltriAgenda,
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
    filtra_appuntamenti,
    incasso_previsto_settimana,
    invia_promemoria,
    prepara_promemoria,
    previsione_giorno,
    riepilogo,
    riprogramma_appuntamento,
    segna_pagato,
    segna_promemoria_inviato,
    slot_liberi_giorno,
    sposta_appuntamento,
)
from studio_agenda.store import SqlAppointmentStore

CFG = Settings(sede_predefinita="Studio Pontecorvo", indirizzi_sedi={"Studio Pontecorvo": "Via Galilei 5"})


def _richiesta(paziente_id: str, inizio: datetime, minuti: int = 60, **kw) -> RichiestaAppuntamento:
    return RichiestaAppuntamento(paziente_id=paziente_id, inizio=inizio, fine=inizio + timedelta(minutes=minuti), **kw)


def _crea(store, paziente_id: str, inizio: datetime, **kw) -> str:
    esito = crea_appuntamenti(store, _richiesta(paziente_id, inizio, **kw), cfg=CFG)
    assert esito.ok
    return esito.appuntamenti_ids[0]


class StoreCheSiRompe:
    """Inoltra all'archivio reale e fallisce alla n-esima creazione."""

    def __init__(self, reale: SqlAppointmentStore, fallisci_alla: int) -> None:
        self._reale = reale
        self._fallisci_alla = fallisci_alla
        self.chiamate = 0

    def __getattr__(self, nome):
        return getattr(self._reale, nome)

    def crea_appuntamento(self, bozza):
        self.chiamate += 1
        if self.chiamate == self._fallisci_alla:
            raise StoreFailure("Connessione persa.")
        return self._reale.crea_appuntamento(bozza)


class StoreSenzaModelli:
    def __init__(self, reale: SqlAppointmentStore) -> None:
        self._reale = reale

    def __getattr__(self, nome):
        return getattr(self._reale, nome)

    def lista_modelli_messaggio(self):
        raise StoreFailure()


class FakeDispatcher:
    def __init__(self) -> None:
        self.inviati: list[tuple[str, str]] = []

    def invia(self, telefono, messaggio):
        self.inviati.append((telefono, messaggio))
        return f"fake://{telefono}"


# =========================
# Creazione
# =========================
def test_crea_singolo_con_prezzo_da_tariffario(store, paziente_id) -> None:
    esito = crea_appuntamenti(
        store,
        _richiesta(paziente_id, datetime(2026, 10, 12, 10, 0), tipo_pagamento=TipoPagamento.CONTANTI, sede="  "),
        cfg=CFG,
    )

    assert esito.ok and esito.creati == 1 and esito.richiesti == 1
    app = store.get_appuntamento(esito.appuntamenti_ids[0])
    assert app.importo == Decimal("35")
    assert app.sede == "Studio Pontecorvo"
    assert app.indirizzo_domicilio is None


def test_crea_a_domicilio(store, paziente_id) -> None:
    app_id = _crea(
        store,
        paziente_id,
        datetime(2026, 10, 12, 10, 0),
        luogo=Luogo.DOMICILIO,
        sede="ignorata",
        indirizzo_domicilio=" Via Verdi 3, Aquino ",
    )
    app = store.get_appuntamento(app_id)
    assert app.sede is None
    assert app.indirizzo_domicilio == "Via Verdi 3, Aquino"


def test_domicilio_senza_indirizzo(store, paziente_id) -> None:
    with pytest.raises(InvalidLocation):
        crea_appuntamenti(
            store,
            _richiesta(paziente_id, datetime(2026, 10, 12, 10, 0), luogo=Luogo.DOMICILIO, indirizzo_domicilio="via"),
            cfg=CFG,
        )


def test_durata_non_valida(store, paziente_id) -> None:
    with pytest.raises(InvalidDuration):
        crea_appuntamenti(store, _richiesta(paziente_id, datetime(2026, 10, 12, 10, 0), minuti=0), cfg=CFG)


def test_prezzo_non_valido_nessuna_scrittura(store, paziente_id) -> None:
    with pytest.raises(InvalidAmount):
        crea_appuntamenti(store, _richiesta(paziente_id, datetime(2026, 10, 12, 10, 0), prezzo="gratis"), cfg=CFG)
    assert agenda_giornaliera(store, date(2026, 10, 12)) == []


def test_crea_ricorrente(store, paziente_id) -> None:
    esito = crea_appuntamenti(
        store,
        _richiesta(
            paziente_id,
            datetime(2026, 10, 5, 9, 0),
            prezzo="30",
            ricorrenza=RichiestaRicorrenza(giorni_settimana=frozenset({1, 3, 5}), fino_a=date(2026, 10, 16)),
        ),
        cfg=CFG,
    )

    assert esito.ok
    assert esito.creati == 6
    assert esito.messaggio == "Creati 6 appuntamenti."
    settimana = agenda_settimanale(store, date(2026, 10, 14))
    assert [a.inizio.day for a in settimana] == [12, 14, 16]
    assert all(a.importo == Decimal("30") for a in settimana)


def test_ricorrenza_senza_occorrenze(store, paziente_id) -> None:
    # lunedì 5 ottobre, solo sabato, fino a venerdì 9
    with pytest.raises(RecurrenceRangeInvalid):
        crea_appuntamenti(
            store,
            _richiesta(
                paziente_id,
                datetime(2026, 10, 5, 9, 0),
                ricorrenza=RichiestaRicorrenza(giorni_settimana=frozenset({6}), fino_a=date(2026, 10, 9)),
            ),
            cfg=CFG,
        )


def test_ricorrenza_troppo_ampia_rifiutata_prima_di_scrivere(store, paziente_id) -> None:
    with pytest.raises(RecurrenceTooLarge):
        crea_appuntamenti(
            store,
            _richiesta(
                paziente_id,
                datetime(2026, 1, 5, 9, 0),
                ricorrenza=RichiestaRicorrenza(giorni_settimana=frozenset(range(1, 7)), fino_a=date(2027, 12, 31)),
            ),
            cfg=CFG,
        )
    assert store.lista_appuntamenti(datetime(2026, 1, 1), datetime(2028, 1, 1)) == []


def test_conflitto_blocca_la_creazione(store, paziente_id) -> None:
    _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0))

    with pytest.raises(SlotOccupied) as exc:
        crea_appuntamenti(store, _richiesta(paziente_id, datetime(2026, 10, 12, 10, 30)), cfg=CFG)
    assert "12/10 10:00-11:00" in exc.value.messaggio
    assert len(agenda_giornaliera(store, date(2026, 10, 12))) == 1


def test_conflitto_su_una_occorrenza_blocca_tutta_la_serie(store, paziente_id) -> None:
    _crea(store, paziente_id, datetime(2026, 10, 14, 9, 30))

    with pytest.raises(SlotOccupied):
        crea_appuntamenti(
            store,
            _richiesta(
                paziente_id,
                datetime(2026, 10, 12, 9, 0),
                ricorrenza=RichiestaRicorrenza(giorni_settimana=frozenset({1, 3, 5}), fino_a=date(2026, 10, 16)),
            ),
            cfg=CFG,
        )
    assert len(agenda_settimanale(store, date(2026, 10, 12))) == 1


def test_sovrapposizione_consentita_su_richiesta(store, paziente_id) -> None:
    _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0))
    esito = crea_appuntamenti(
        store, _richiesta(paziente_id, datetime(2026, 10, 12, 10, 30)), consenti_sovrapposizioni=True, cfg=CFG
    )
    assert esito.ok


def test_annullati_non_occupano_l_orario(store, paziente_id) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0))
    cambia_stato(store, app_id, StatoAppuntamento.ANNULLATO)

    _crea(store, paziente_id, datetime(2026, 10, 12, 10, 30))
    assert len(agenda_giornaliera(store, date(2026, 10, 12))) == 2
    assert len(agenda_giornaliera(store, date(2026, 10, 12), includi_annullati=False)) == 1


def test_errore_a_meta_serie_riporta_creati(store, paziente_id) -> None:
    rotto = StoreCheSiRompe(store, fallisci_alla=3)
    esito = crea_appuntamenti(
        rotto,
        _richiesta(
            paziente_id,
            datetime(2026, 10, 5, 9, 0),
            ricorrenza=RichiestaRicorrenza(giorni_settimana=frozenset({1, 3, 5}), fino_a=date(2026, 10, 16)),
        ),
        cfg=CFG,
    )

    assert esito.ok is False
    assert esito.creati == 2
    assert esito.richiesti == 6
    assert esito.messaggio.startswith("Creati 2 appuntamenti su 6.")
    assert len(store.lista_appuntamenti(datetime(2026, 10, 5), datetime(2026, 10, 17))) == 2


# =========================
# Modifica
# =========================
def test_sposta_mantiene_durata_e_ignora_se_stesso(store, paziente_id) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0), minuti=45)

    app = sposta_appuntamento(store, app_id, datetime(2026, 10, 12, 10, 30))
    assert app.inizio == datetime(2026, 10, 12, 10, 30)
    assert app.fine == datetime(2026, 10, 12, 11, 15)


def test_sposta_su_orario_occupato(store, paziente_id) -> None:
    _crea(store, paziente_id, datetime(2026, 10, 12, 12, 0))
    app_id = _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0))

    with pytest.raises(SlotOccupied):
        sposta_appuntamento(store, app_id, datetime(2026, 10, 12, 11, 30))
    assert store.get_appuntamento(app_id).inizio == datetime(2026, 10, 12, 10, 0)


def test_riprogramma(store, paziente_id) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0))
    app = riprogramma_appuntamento(store, app_id, date(2026, 10, 13), time(16, 15, 42), 90)

    assert app.inizio == datetime(2026, 10, 13, 16, 15)
    assert app.fine == datetime(2026, 10, 13, 17, 45)


def test_duplica(store, paziente_id) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0), prezzo="45", note="cervicale")
    cambia_stato(store, app_id, StatoAppuntamento.ESEGUITO, pagato=True)

    copia = duplica_appuntamento(store, app_id, datetime(2026, 10, 19, 10, 0))
    assert copia.id != app_id
    assert copia.stato == StatoAppuntamento.PRENOTATO
    assert copia.pagato is False
    assert copia.importo == Decimal("45")
    assert copia.note == "cervicale"
    assert copia.fine == datetime(2026, 10, 19, 11, 0)


def test_aggiorna_dettagli(store, paziente_id) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0), note="prima")

    app = aggiorna_dettagli(store, app_id, prezzo="28,50", tipo_trattamento=TipoTrattamento.MACCHINARIO)
    assert app.importo == Decimal("28.50")
    assert app.note == "prima"

    app = aggiorna_dettagli(store, app_id, note="  ", prezzo=None)
    assert app.note is None
    assert app.importo is None

    with pytest.raises(InvalidAmount):
        aggiorna_dettagli(store, app_id, prezzo="-3")


def test_operazioni_su_appuntamento_inesistente(store) -> None:
    with pytest.raises(AppointmentNotFound):
        sposta_appuntamento(store, "manca", datetime(2026, 10, 12, 10, 0))
    with pytest.raises(AppointmentNotFound):
        cambia_stato(store, "manca", "done")
    with pytest.raises(AppointmentNotFound):
        elimina_appuntamento(store, "manca")


# =========================
# Stato / pagamento
# =========================
def test_ciclo_stato_e_pagamento(store, paziente_id) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0))

    with pytest.raises(IllegalPaymentState):
        segna_pagato(store, app_id)

    app = cambia_stato(store, app_id, "done", pagato=True)
    assert (app.stato, app.pagato) == (StatoAppuntamento.ESEGUITO, True)

    app = cambia_stato(store, app_id, "confirmed")
    assert app.pagato is False

    app = alterna_eseguito(store, app_id)
    assert app.stato == StatoAppuntamento.ESEGUITO
    app = segna_pagato(store, app_id)
    assert app.pagato is True
    app = alterna_eseguito(store, app_id)
    assert (app.stato, app.pagato) == (StatoAppuntamento.CONFERMATO, False)

    app = cambia_stato(store, app_id, "no_show")
    assert app.stato == StatoAppuntamento.NON_PAGATO


def test_elimina(store, paziente_id) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0))
    elimina_appuntamento(store, app_id)
    assert store.get_appuntamento(app_id) is None


# =========================
# Agenda / statistiche
# =========================
def test_slot_liberi_e_previsione(store, paziente_id) -> None:
    giorno = date(2026, 10, 12)
    _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0))
    annullato = _crea(store, paziente_id, datetime(2026, 10, 12, 14, 0))
    cambia_stato(store, annullato, StatoAppuntamento.ANNULLATO)

    ore = [s.ora for s in slot_liberi_giorno(store, giorno, CFG)]
    assert "10:00" not in ore
    assert "14:00" in ore

    previsione = previsione_giorno(store, giorno, CFG)
    assert previsione.totale_appuntamenti == 1
    assert previsione.minuti_occupati == 60


def test_slot_liberi_con_finestra_configurata(store) -> None:
    cfg = replace(CFG, ora_inizio_giornata=9, ora_fine_giornata=12, granularita_slot_minuti=60)
    assert [s.ora for s in slot_liberi_giorno(store, date(2026, 10, 12), cfg)] == ["09:00", "10:00", "11:00"]


def test_riepilogo_e_incasso(store, paziente_id) -> None:
    a = _crea(store, paziente_id, datetime(2026, 10, 12, 9, 0))
    b = _crea(store, paziente_id, datetime(2026, 10, 12, 11, 0), tipo_pagamento=TipoPagamento.CONTANTI)
    c = _crea(store, paziente_id, datetime(2026, 10, 14, 11, 0), prezzo="50")
    d = _crea(store, paziente_id, datetime(2026, 10, 15, 11, 0))
    cambia_stato(store, a, "done", pagato=True)
    cambia_stato(store, b, "confirmed")
    cambia_stato(store, c, "done")
    cambia_stato(store, d, "cancelled")

    r = riepilogo(agenda_settimanale(store, date(2026, 10, 12)))
    assert (r.totale, r.eseguiti, r.confermati, r.prenotati) == (4, 2, 1, 0)
    assert r.incasso == Decimal("90")

    assert incasso_previsto_settimana(store, date(2026, 10, 16)) == Decimal("125")


def test_filtra_appuntamenti(store, paziente_id) -> None:
    _crea(store, paziente_id, datetime(2026, 10, 12, 9, 0))
    _crea(
        store,
        paziente_id,
        datetime(2026, 10, 12, 11, 0),
        luogo=Luogo.DOMICILIO,
        indirizzo_domicilio="Via Verdi 3",
        tipo_trattamento=TipoTrattamento.MACCHINARIO,
        tipo_pagamento=TipoPagamento.CONTANTI,
    )
    tutti = agenda_giornaliera(store, date(2026, 10, 12))

    assert len(filtra_appuntamenti(tutti, FiltriAgenda(luogo=Luogo.DOMICILIO))) == 1
    assert len(filtra_appuntamenti(tutti, FiltriAgenda(importo_min=Decimal("30")))) == 1
    assert len(filtra_appuntamenti(tutti, FiltriAgenda(importo_max=Decimal("20")))) == 1
    assert len(filtra_appuntamenti(tutti, FiltriAgenda(stato=StatoAppuntamento.PRENOTATO))) == 2
    assert filtra_appuntamenti(tutti, FiltriAgenda(tipo_pagamento=TipoPagamento.CONTANTI))[0].inizio.hour == 11


# =========================
# Promemoria
# =========================
def test_prepara_promemoria_con_modello(store, paziente_id, session_factory, adesso) -> None:
    with session_factory.begin() as s:
        s.add(ModelloMessaggio(nome="Breve", testo="Ciao {nome}, {data_relativa} alle {ora}. {luogo}", predefinito=True))

    app_id = _crea(store, paziente_id, datetime(2026, 10, 13, 15, 30))
    p = prepara_promemoria(store, app_id, adesso, indirizzi_sedi=CFG.indirizzi_sedi)

    assert p.telefono == "393331234567"
    assert p.messaggio == "Ciao Maria, domani alle 15:30. Via Galilei 5"


def test_prepara_promemoria_archivio_modelli_non_disponibile(store, paziente_id, adesso) -> None:
    app_id = _crea(
        store,
        paziente_id,
        datetime(2026, 10, 12, 18, 0),
        luogo=Luogo.DOMICILIO,
        indirizzo_domicilio="Via Verdi 3",
    )
    p = prepara_promemoria(StoreSenzaModelli(store), app_id, adesso)

    assert p.messaggio == (
        "Buongiorno Maria, le ricordiamo il suo appuntamento di oggi alle ore 18:00. "
        "Luogo: Presso il suo domicilio (Via Verdi 3)."
    )


def test_promemoria_senza_telefono(store, adesso) -> None:
    pid = store.crea_paziente("Luca", "Bianchi")
    app_id = _crea(store, pid, datetime(2026, 10, 12, 10, 0))

    with pytest.raises(MissingRecipient):
        prepara_promemoria(store, app_id, adesso)


def test_invia_promemoria(store, paziente_id, adesso) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 16, 9, 0))
    dispatcher = FakeDispatcher()

    p = invia_promemoria(store, dispatcher, app_id, adesso)
    assert p.url == "fake://393331234567"
    assert dispatcher.inviati == [("393331234567", p.messaggio)]
    assert "venerdì 16 ottobre" in p.messaggio


def test_invia_promemoria_registra_l_invio(store, paziente_id, adesso) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 13, 9, 0))
    assert store.get_appuntamento(app_id).promemoria_inviato_il is None

    invia_promemoria(store, FakeDispatcher(), app_id, adesso)
    assert store.get_appuntamento(app_id).promemoria_inviato_il == adesso

    dopo = adesso + timedelta(hours=2)
    app = segna_promemoria_inviato(store, app_id, dopo)
    assert app.promemoria_inviato_il == dopo


def test_promemoria_non_consegnato_non_viene_registrato(store, adesso) -> None:
    pid = store.crea_paziente("Luca", "Bianchi")
    app_id = _crea(store, pid, datetime(2026, 10, 13, 9, 0))

    with pytest.raises(MissingRecipient):
        invia_promemoria(store, FakeDispatcher(), app_id, adesso)
    assert store.get_appuntamento(app_id).promemoria_inviato_il is None


def test_orari_con_fuso_rifiutati(store, paziente_id) -> None:
    app_id = _crea(store, paziente_id, datetime(2026, 10, 12, 10, 0))
    utc = datetime(2026, 10, 12, 10, 30, tzinfo=timezone.utc)

    with pytest.raises(InvalidTimestamp):
        crea_appuntamenti(store, _richiesta(paziente_id, utc), cfg=CFG)
    with pytest.raises(InvalidTimestamp):
        sposta_appuntamento(store, app_id, utc)
    with pytest.raises(InvalidTimestamp):
        duplica_appuntamento(store, app_id, utc)
    with pytest.raises(InvalidTimestamp):
        riprogramma_appuntamento(store, app_id, date(2026, 10, 13), time(9, 0, tzinfo=timezone.utc), 60)

    assert store.get_appuntamento(app_id).inizio == datetime(2026, 10, 12, 10, 0)


def test_segna_promemoria_inviato_appuntamento_inesistente(store, adesso) -> None:
    with pytest.raises(AppointmentNotFound):
        segna_promemoria_inviato(store, "non-esiste", adesso)
