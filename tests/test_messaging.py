"""Numeri di telefono e link WhatsApp Web."""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest

from studio_agenda.errors import MissingRecipient
from studio_agenda.messaging import WhatsAppDispatcher, normalizza_telefono, url_whatsapp


@pytest.mark.parametrize(
    ("grezzo", "atteso"),
    [
        ("333 123 4567", "393331234567"),
        ("+39 333-123-4567", "393331234567"),
        ("0039 333 1234567", "393331234567"),
        ("0776 123456", "39776123456"),
        ("(333) 123.4567", "393331234567"),
        ("+44 20 7946 0958", "442079460958"),
    ],
)
def test_normalizza_telefono(grezzo: str, atteso: str) -> None:
    assert normalizza_telefono(grezzo) == atteso


@pytest.mark.parametrize("grezzo", [None, "", "   ", "12345", "abc"])
def test_telefono_mancante_o_troppo_corto(grezzo) -> None:
    with pytest.raises(MissingRecipient):
        normalizza_telefono(grezzo)


def test_url_whatsapp_codifica_il_testo() -> None:
    url = url_whatsapp("3331234567", "Buongiorno Maria,\n\nore 15:30 & saluti")
    parsed = urlparse(url)

    assert parsed.netloc == "web.whatsapp.com"
    assert parsed.path == "/send"
    query = parse_qs(parsed.query)
    assert query["phone"] == ["393331234567"]
    assert query["text"] == ["Buongiorno Maria,\n\nore 15:30 & saluti"]


def test_dispatcher_apre_il_link() -> None:
    aperti: list[str] = []

    def opener(url: str) -> bool:
        aperti.append(url)
        return True

    url = WhatsAppDispatcher(opener=opener).invia("3331234567", "Ciao")
    assert aperti == [url]
    assert "phone=393331234567" in url


def test_dispatcher_senza_telefono() -> None:
    dispatcher = WhatsAppDispatcher(opener=lambda url: True)
    with pytest.raises(MissingRecipient):
        dispatcher.invia(None, "Ciao")


def test_dispatcher_browser_non_disponibile_restituisce_comunque_il_link() -> None:
    url = WhatsAppDispatcher(opener=lambda url: False).invia("3331234567", "Ciao")
    assert url.startswith("https://web.whatsapp.com/send?phone=")
