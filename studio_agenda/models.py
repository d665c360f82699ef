from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


class StatoAppuntamento(enum.Enum):
    PRENOTATO = "booked"
    CONFERMATO = "confirmed"
    ESEGUITO = "done"
    ANNULLATO = "cancelled"
    NON_PAGATO = "not_paid"


class Luogo(enum.Enum):
    STUDIO = "studio"
    DOMICILIO = "domicile"


class TipoTrattamento(enum.Enum):
    SEDUTA = "seduta"
    MACCHINARIO = "macchinario"


class TipoPagamento(enum.Enum):
    FATTURATO = "invoiced"
    CONTANTI = "cash"


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    # sul DB finiscono i valori ("done", "cash"...), non i nomi dei membri
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda e: [m.value for m in e],
        validate_strings=True,
    )


class Paziente(Base):
    __tablename__ = "pazienti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(80), nullable=False)
    cognome: Mapped[str] = mapped_column(String(80), nullable=False)
    telefono: Mapped[str | None] = mapped_column(String(30), nullable=True)

    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="paziente", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Paziente({self.nome} {self.cognome})"


class Appuntamento(Base):
    __tablename__ = "appuntamenti"
    __table_args__ = (
        CheckConstraint("fine > inizio", name="ck_app_durata_positiva"),
        CheckConstraint("NOT pagato OR stato = 'done'", name="ck_app_pagato_solo_se_eseguito"),
        # Ultima difesa contro doppie prenotazioni identiche (stesso orario di inizio).
        # Le sovrapposizioni parziali restano affidate al controllo applicativo.
        Index(
            "uq_app_inizio_attivi",
            "inizio",
            unique=True,
            sqlite_where=text("stato != 'cancelled'"),
            postgresql_where=text("stato != 'cancelled'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    paziente_id: Mapped[str] = mapped_column(ForeignKey("pazienti.id"), nullable=False)

    inizio: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    fine: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    stato: Mapped[StatoAppuntamento] = mapped_column(
        _enum_column(StatoAppuntamento, "stato_appuntamento"),
        default=StatoAppuntamento.PRENOTATO,
        nullable=False,
    )
    pagato: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    luogo: Mapped[Luogo] = mapped_column(_enum_column(Luogo, "luogo"), default=Luogo.STUDIO, nullable=False)
    sede: Mapped[str | None] = mapped_column(String(120), nullable=True)
    indirizzo_domicilio: Mapped[str | None] = mapped_column(String(255), nullable=True)

    tipo_trattamento: Mapped[TipoTrattamento] = mapped_column(
        _enum_column(TipoTrattamento, "tipo_trattamento"), default=TipoTrattamento.SEDUTA, nullable=False
    )
    tipo_pagamento: Mapped[TipoPagamento] = mapped_column(
        _enum_column(TipoPagamento, "tipo_pagamento"), default=TipoPagamento.FATTURATO, nullable=False
    )
    # NULL = prezzo standard da tariffario al momento della lettura
    importo: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ultimo promemoria WhatsApp consegnato all'operatore per l'invio; NULL = mai
    promemoria_inviato_il: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    paziente: Mapped["Paziente"] = relationship(back_populates="appuntamenti")

    def __repr__(self) -> str:
        return f"Appuntamento({self.inizio:%d/%m/%Y %H:%M}, {self.stato.value})"


class ModelloMessaggio(Base):
    __tablename__ = "modelli_messaggio"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    testo: Mapped[str] = mapped_column(Text, nullable=False)
    predefinito: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attivo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
