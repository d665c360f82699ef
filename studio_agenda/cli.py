from __future__ import annotations

import argparse
import sys
from datetime import date, datetime, timedelta

from studio_agenda.config import settings
from studio_agenda.errors import AgendaError
from studio_agenda.logging_config import configure_logging
from studio_agenda.messaging import WhatsAppDispatcher, url_whatsapp
from studio_agenda.models import Luogo, TipoPagamento, TipoTrattamento
from studio_agenda.pricing import prezzo_effettivo
from studio_agenda.seed import seed_base
from studio_agenda.services import (
    RichiestaAppuntamento,
    RichiestaRicorrenza,
    agenda_giornaliera,
    alterna_eseguito,
    cambia_stato,
    crea_appuntamenti,
    duplica_appuntamento,
    elimina_appuntamento,
    init_db,
    invia_promemoria,
    prepara_promemoria,
    previsione_giorno,
    segna_pagato,
    slot_liberi_giorno,
    sposta_appuntamento,
)
from studio_agenda.stato import ETICHETTE_STATO
from studio_agenda.store import SqlAppointmentStore

store = SqlAppointmentStore()


def _giorni(valore: str) -> frozenset[int]:
    # es: "1,3,5" = lunedì, mercoledì, venerdì
    try:
        return frozenset(int(x) for x in valore.split(",") if x.strip())
    except ValueError as e:
        raise argparse.ArgumentTypeError("Giorni non validi: usa numeri 1-6 separati da virgola.") from e


def _data_ora(valore: str) -> datetime:
    try:
        return datetime.fromisoformat(valore)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Data e ora non valide: {valore!r} (formato 2026-01-14T10:30).") from e


def _data(valore: str) -> date:
    try:
        return date.fromisoformat(valore)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Data non valida: {valore!r} (formato 2026-01-14).") from e


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("DB inizializzato e seed completato.")


def cmd_list_patients(args: argparse.Namespace) -> None:
    for p in store.lista_pazienti():
        print(f"{p.id} | {p.cognome} {p.nome} | {p.telefono or '-'}")


def cmd_add_patient(args: argparse.Namespace) -> None:
    pid = store.crea_paziente(args.nome, args.cognome, args.telefono)
    print(f"Paziente creato: {pid}")


def cmd_book(args: argparse.Namespace) -> None:
    inizio = args.start
    fine = args.end or inizio + timedelta(minutes=args.durata)

    ricorrenza = None
    if args.giorni:
        if not args.fino_a:
            raise AgendaError("Per la ricorrenza indica anche --fino-a.")
        ricorrenza = RichiestaRicorrenza(giorni_settimana=args.giorni, fino_a=args.fino_a)

    esito = crea_appuntamenti(
        store,
        RichiestaAppuntamento(
            paziente_id=args.paziente_id,
            inizio=inizio,
            fine=fine,
            luogo=Luogo(args.luogo),
            sede=args.sede,
            indirizzo_domicilio=args.indirizzo,
            tipo_trattamento=TipoTrattamento(args.trattamento),
            tipo_pagamento=TipoPagamento(args.pagamento),
            prezzo=args.prezzo,
            note=args.note,
            ricorrenza=ricorrenza,
        ),
        consenti_sovrapposizioni=args.forza,
    )
    print(esito.messaggio)
    for app_id in esito.appuntamenti_ids:
        print(f"Appuntamento ID: {app_id}")


def cmd_move(args: argparse.Namespace) -> None:
    app = sposta_appuntamento(store, args.appuntamento_id, args.start, args.forza)
    print(f"Spostato: {app.inizio:%d/%m/%Y %H:%M}-{app.fine:%H:%M}")


def cmd_duplicate(args: argparse.Namespace) -> None:
    app = duplica_appuntamento(store, args.appuntamento_id, args.start, args.forza)
    print(f"Duplicato: {app.id} ({app.inizio:%d/%m/%Y %H:%M})")


def cmd_status(args: argparse.Namespace) -> None:
    pagato = True if args.pagato else None
    app = cambia_stato(store, args.appuntamento_id, args.stato, pagato)
    print(f"Stato: {ETICHETTE_STATO[app.stato]} | pagato: {'sì' if app.pagato else 'no'}")


def cmd_pay(args: argparse.Namespace) -> None:
    app = segna_pagato(store, args.appuntamento_id, not args.annulla)
    print(f"Pagato: {'sì' if app.pagato else 'no'}")


def cmd_toggle(args: argparse.Namespace) -> None:
    app = alterna_eseguito(store, args.appuntamento_id)
    print(f"Stato: {ETICHETTE_STATO[app.stato]}")


def cmd_delete(args: argparse.Namespace) -> None:
    elimina_appuntamento(store, args.appuntamento_id)
    print("Eliminato.")


def cmd_agenda(args: argparse.Namespace) -> None:
    giorno = args.giorno or date.today()
    items = agenda_giornaliera(store, giorno)
    if not items:
        print("Nessun appuntamento per questo giorno.")
        return
    for a in items:
        paz = f"{a.paziente.cognome} {a.paziente.nome}" if a.paziente else a.paziente_id
        luogo = a.sede if a.luogo == Luogo.STUDIO else "DOMICILIO"
        avvisato = f" | promemoria {a.promemoria_inviato_il:%d/%m %H:%M}" if a.promemoria_inviato_il else ""
        print(
            f"{a.inizio:%H:%M}-{a.fine:%H:%M} | {paz} | {ETICHETTE_STATO[a.stato]} | "
            f"{luogo} | €{prezzo_effettivo(a)} | {a.id}{avvisato}"
        )


def cmd_slots(args: argparse.Namespace) -> None:
    giorno = args.giorno or date.today()
    liberi = slot_liberi_giorno(store, giorno)
    print(", ".join(s.ora for s in liberi) or "Nessuno slot libero.")
    p = previsione_giorno(store, giorno)
    print(f"Occupazione {p.tasso_occupazione:.0f}% ({p.raccomandazione})")


def cmd_remind(args: argparse.Namespace) -> None:
    """
    Compone il promemoria:
    - senza --open stampa testo e link WhatsApp Web
    - con --open apre il link nel browser
    """
    adesso = datetime.now()
    if args.open:
        p = invia_promemoria(store, WhatsAppDispatcher(), args.appuntamento_id, adesso, args.modello)
        url = p.url
    else:
        p = prepara_promemoria(store, args.appuntamento_id, adesso, args.modello)
        url = url_whatsapp(p.telefono, p.messaggio)
    print(f"Destinatario: {p.telefono}\n\n{p.messaggio}\n\n{url}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="studio_agenda", description="CLI Studio Agenda")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB e carica seed")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("patients", help="Lista pazienti")
    p_list.set_defaults(func=cmd_list_patients)

    p_addp = sub.add_parser("add-patient", help="Crea paziente")
    p_addp.add_argument("--nome", required=True)
    p_addp.add_argument("--cognome", required=True)
    p_addp.add_argument("--telefono", default=None)
    p_addp.set_defaults(func=cmd_add_patient)

    p_book = sub.add_parser("book", help="Crea appuntamento (singolo o ricorrente)")
    p_book.add_argument("--paziente-id", required=True)
    p_book.add_argument("--start", type=_data_ora, required=True, help="ISO datetime es: 2026-01-14T10:30")
    p_book.add_argument("--end", type=_data_ora, default=None, help="ISO datetime; in alternativa --durata")
    p_book.add_argument("--durata", type=int, default=60, help="Minuti (default 60)")
    p_book.add_argument("--luogo", choices=[x.value for x in Luogo], default=Luogo.STUDIO.value)
    p_book.add_argument("--sede", default=settings.sede_predefinita)
    p_book.add_argument("--indirizzo", default=None, help="Indirizzo domicilio")
    p_book.add_argument("--trattamento", choices=[x.value for x in TipoTrattamento], default=TipoTrattamento.SEDUTA.value)
    p_book.add_argument("--pagamento", choices=[x.value for x in TipoPagamento], default=TipoPagamento.FATTURATO.value)
    p_book.add_argument("--prezzo", default=None, help="Prezzo personalizzato (es. 37,50)")
    p_book.add_argument("--note", default=None)
    p_book.add_argument("--giorni", type=_giorni, default=None, help="Ricorrenza: giorni 1-6 (lun-sab), es 1,3,5")
    p_book.add_argument("--fino-a", type=_data, default=None, help="Ricorrenza: ultima data (YYYY-MM-DD)")
    p_book.add_argument("--forza", action="store_true", help="Salva anche se l'orario è occupato")
    p_book.set_defaults(func=cmd_book)

    p_move = sub.add_parser("move", help="Sposta appuntamento mantenendo la durata")
    p_move.add_argument("--appuntamento-id", required=True)
    p_move.add_argument("--start", type=_data_ora, required=True)
    p_move.add_argument("--forza", action="store_true")
    p_move.set_defaults(func=cmd_move)

    p_dup = sub.add_parser("duplicate", help="Duplica appuntamento su un nuovo orario")
    p_dup.add_argument("--appuntamento-id", required=True)
    p_dup.add_argument("--start", type=_data_ora, required=True)
    p_dup.add_argument("--forza", action="store_true")
    p_dup.set_defaults(func=cmd_duplicate)

    p_stato = sub.add_parser("status", help="Cambia stato")
    p_stato.add_argument("--appuntamento-id", required=True)
    p_stato.add_argument("--stato", required=True, help="booked, confirmed, done, cancelled, not_paid (no_show)")
    p_stato.add_argument("--pagato", action="store_true", help="Segna anche come pagato (solo con done)")
    p_stato.set_defaults(func=cmd_status)

    p_pay = sub.add_parser("pay", help="Segna pagamento")
    p_pay.add_argument("--appuntamento-id", required=True)
    p_pay.add_argument("--annulla", action="store_true", help="Rimuove il pagamento")
    p_pay.set_defaults(func=cmd_pay)

    p_toggle = sub.add_parser("toggle", help="Alterna eseguito/confermato")
    p_toggle.add_argument("--appuntamento-id", required=True)
    p_toggle.set_defaults(func=cmd_toggle)

    p_del = sub.add_parser("delete", help="Elimina definitivamente")
    p_del.add_argument("--appuntamento-id", required=True)
    p_del.set_defaults(func=cmd_delete)

    p_agenda = sub.add_parser("agenda", help="Agenda del giorno")
    p_agenda.add_argument("--giorno", type=_data, default=None, help="YYYY-MM-DD (default oggi)")
    p_agenda.set_defaults(func=cmd_agenda)

    p_slots = sub.add_parser("slots", help="Slot liberi del giorno")
    p_slots.add_argument("--giorno", type=_data, default=None)
    p_slots.set_defaults(func=cmd_slots)

    p_rem = sub.add_parser("remind", help="Componi promemoria WhatsApp")
    p_rem.add_argument("--appuntamento-id", required=True)
    p_rem.add_argument("--modello", default=None, help="Nome modello (default: predefinito)")
    p_rem.add_argument("--open", action="store_true", help="Apri WhatsApp Web nel browser")
    p_rem.set_defaults(func=cmd_remind)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(settings.log_level)
    init_db()  # garantisce tabelle
    try:
        args.func(args)
    except AgendaError as e:
        print(f"Errore: {e.messaggio}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
