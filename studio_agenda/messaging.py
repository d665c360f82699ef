from __future__ import annotations

import logging
import re
import webbrowser
from typing import Callable, Protocol
from urllib.parse import quote

from .errors import MissingRecipient

logger = logging.getLogger(__name__)

WHATSAPP_WEB_URL = "https://web.whatsapp.com/send"
PREFISSO_ITALIA = "39"
MIN_CIFRE = 9


def normalizza_telefono(telefono: str | None) -> str:
    """
    Numero in sole cifre con prefisso internazionale (default Italia).
    - rimuove spazi, parentesi, trattini, punti e '+'
    - '00' iniziale = prefisso internazionale
    - '0' iniziale (fisso) -> 39
    - cellulare di 10 cifre che inizia per 3 -> 39 davanti
    """
    if not telefono:
        raise MissingRecipient()

    grezzo = telefono.strip()
    cifre = re.sub(r"\D", "", grezzo)
    if grezzo.startswith("+"):
        pass
    elif cifre.startswith("00"):
        cifre = cifre[2:]
    elif cifre.startswith("0"):
        cifre = PREFISSO_ITALIA + cifre[1:]
    elif len(cifre) == 10 and cifre.startswith("3"):
        cifre = PREFISSO_ITALIA + cifre

    if len(cifre) < MIN_CIFRE:
        raise MissingRecipient()
    return cifre


def url_whatsapp(telefono: str, messaggio: str) -> str:
    return f"{WHATSAPP_WEB_URL}?phone={normalizza_telefono(telefono)}&text={quote(messaggio, safe='')}"


class MessagingDispatcher(Protocol):
    def invia(self, telefono: str | None, messaggio: str) -> str: ...


class WhatsAppDispatcher:
    """
    Apre la composizione del messaggio su WhatsApp Web.
    L'invio vero e proprio resta un gesto dell'operatore.
    """

    def __init__(self, opener: Callable[[str], bool] | None = None) -> None:
        self._opener = opener or webbrowser.open

    def invia(self, telefono: str | None, messaggio: str) -> str:
        url = url_whatsapp(telefono or "", messaggio)
        if not self._opener(url):
            logger.warning("Impossibile aprire il browser per WhatsApp Web")
        else:
            logger.info("Composizione WhatsApp aperta")
        return url
