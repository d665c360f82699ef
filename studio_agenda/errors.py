"""
Errori di dominio dell'agenda.

Ogni errore porta un messaggio breve e leggibile dall'operatore; i livelli
superiori (API, CLI, console) lo mostrano così com'è senza interrompere
l'applicazione.
"""
from __future__ import annotations


class AgendaError(Exception):
    messaggio_default = "Operazione non valida."

    def __init__(self, messaggio: str | None = None) -> None:
        self.messaggio = messaggio or self.messaggio_default
        super().__init__(self.messaggio)


class InvalidDuration(AgendaError):
    messaggio_default = "Durata appuntamento non valida: la fine deve seguire l'inizio."


class InvalidTimestamp(AgendaError):
    messaggio_default = "Orario non valido: indica l'ora locale senza fuso orario."


class InvalidAmount(AgendaError):
    messaggio_default = "Importo non valido: inserisci un numero positivo (es. 40 o 37,50)."


class InvalidLocation(AgendaError):
    messaggio_default = "Luogo dell'appuntamento non valido."


class RecurrenceRangeInvalid(AgendaError):
    messaggio_default = "La data 'Ripeti fino a' non può essere precedente alla prima data."


class RecurrenceTooLarge(AgendaError):
    def __init__(self, count: int, limite: int = 200) -> None:
        self.count = count
        self.limite = limite
        super().__init__(
            f"Ricorrenza troppo ampia: oltre {limite} appuntamenti. "
            "Riduci l'intervallo o i giorni selezionati."
        )


class IllegalStatus(AgendaError):
    def __init__(self, valore: object) -> None:
        self.valore = valore
        super().__init__(f"Stato non ammesso: {valore!s}")


class IllegalPaymentState(AgendaError):
    messaggio_default = "Un appuntamento può essere segnato come pagato solo se eseguito."


class SlotOccupied(AgendaError):
    def __init__(self, conflitti: list) -> None:
        self.conflitti = conflitti
        orari = ", ".join(f"{c.inizio:%d/%m %H:%M}-{c.fine:%H:%M}" for c in conflitti[:5])
        super().__init__(f"Orario già occupato ({orari}).")


class AppointmentNotFound(AgendaError):
    def __init__(self, appuntamento_id: str) -> None:
        self.appuntamento_id = appuntamento_id
        super().__init__("Appuntamento non trovato.")


class MissingRecipient(AgendaError):
    messaggio_default = "Nessun telefono valido registrato per questo paziente."


class StoreFailure(AgendaError):
    """Errore opaco del sistema di persistenza (passthrough)."""

    messaggio_default = "Errore di salvataggio dati."
