from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .db import db_session
from .messaggi import MODELLO_CONFERMA, MODELLO_PROMEMORIA
from .models import ModelloMessaggio

MODELLI_BASE = [
    # (nome, testo, predefinito)
    ("Promemoria", MODELLO_PROMEMORIA, True),
    ("Appuntamento", MODELLO_CONFERMA, False),
]


def seed_base(factory: sessionmaker[Session] | None = None) -> None:
    """
    Popola dati minimi (idempotente):
    - modelli di messaggio (promemoria predefinito + conferma)
    Un modello già presente non viene sovrascritto: l'operatore può averlo modificato.
    """
    with db_session(factory) as s:
        ha_predefinito = (
            s.execute(select(ModelloMessaggio.id).where(ModelloMessaggio.predefinito.is_(True)).limit(1)).first()
            is not None
        )
        for nome, testo, predefinito in MODELLI_BASE:
            if s.execute(select(ModelloMessaggio).where(ModelloMessaggio.nome == nome)).scalar_one_or_none() is None:
                s.add(ModelloMessaggio(nome=nome, testo=testo, predefinito=predefinito and not ha_predefinito))
