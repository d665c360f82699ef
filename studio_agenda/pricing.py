from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .errors import InvalidAmount
from .models import TipoPagamento, TipoTrattamento

TARIFFARIO: dict[tuple[TipoTrattamento, TipoPagamento], Decimal] = {
    (TipoTrattamento.SEDUTA, TipoPagamento.FATTURATO): Decimal("40"),
    (TipoTrattamento.SEDUTA, TipoPagamento.CONTANTI): Decimal("35"),
    (TipoTrattamento.MACCHINARIO, TipoPagamento.FATTURATO): Decimal("25"),
    (TipoTrattamento.MACCHINARIO, TipoPagamento.CONTANTI): Decimal("20"),
}


def prezzo_standard(tipo_trattamento: TipoTrattamento, tipo_pagamento: TipoPagamento) -> Decimal:
    return TARIFFARIO[(tipo_trattamento, tipo_pagamento)]


def parse_importo(valore: str | int | float | Decimal | None) -> Decimal | None:
    """
    Converte l'importo inserito dall'operatore.
    - None / stringa vuota -> None (nessun override)
    - accetta sia virgola sia punto come separatore decimale
    - solleva InvalidAmount se non è un numero finito > 0
    """
    if valore is None:
        return None
    if isinstance(valore, bool):
        raise InvalidAmount()

    if isinstance(valore, str):
        testo = valore.strip()
        if not testo:
            return None
        try:
            importo = Decimal(testo.replace(",", "."))
        except InvalidOperation as e:
            raise InvalidAmount() from e
    else:
        try:
            importo = Decimal(str(valore)) if isinstance(valore, float) else Decimal(valore)
        except InvalidOperation as e:
            raise InvalidAmount() from e

    if not importo.is_finite() or importo <= 0:
        raise InvalidAmount()
    return importo


def risolvi_prezzo(
    tipo_trattamento: TipoTrattamento,
    tipo_pagamento: TipoPagamento,
    override: str | int | float | Decimal | None = None,
) -> Decimal:
    """Il prezzo inserito dall'operatore vince sempre sul tariffario."""
    importo = parse_importo(override)
    if importo is not None:
        return importo
    return prezzo_standard(tipo_trattamento, tipo_pagamento)


def prezzo_effettivo(app) -> Decimal:
    """Importo salvato sull'appuntamento, altrimenti prezzo da tariffario."""
    if app.importo is not None:
        return Decimal(app.importo)
    return prezzo_standard(app.tipo_trattamento, app.tipo_pagamento)
