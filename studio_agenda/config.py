from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# DB SQLite su file nella root del progetto (accanto a streamlit_app.py)
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "studio_agenda.sqlite"

DEFAULT_CLINIC_SITE = "Studio Pontecorvo"
DEFAULT_CLINIC_ADDRESS = "Pontecorvo, Via Galileo Galilei 5, dietro il Bar Principe"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Variabile {name} non valida: {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH}"
    log_level: str = "INFO"

    # finestra lavorativa usata per slot liberi e previsione occupazione
    ora_inizio_giornata: int = 7
    ora_fine_giornata: int = 22
    granularita_slot_minuti: int = 30
    durata_slot_minuti: int = 60

    sede_predefinita: str = DEFAULT_CLINIC_SITE
    indirizzi_sedi: dict[str, str] = field(
        default_factory=lambda: {DEFAULT_CLINIC_SITE: DEFAULT_CLINIC_ADDRESS}
    )

    api_base: str = "http://127.0.0.1:8000"

    @property
    def indirizzo_predefinito(self) -> str:
        return self.indirizzi_sedi.get(self.sede_predefinita, DEFAULT_CLINIC_ADDRESS)


def load_settings() -> Settings:
    """Legge la configurazione da variabili d'ambiente (.env incluso)."""
    sede = os.getenv("STUDIO_SEDE", DEFAULT_CLINIC_SITE)
    indirizzo = os.getenv("STUDIO_INDIRIZZO", DEFAULT_CLINIC_ADDRESS)

    settings = Settings(
        database_url=os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        ora_inizio_giornata=_int_env("AGENDA_ORA_INIZIO", 7),
        ora_fine_giornata=_int_env("AGENDA_ORA_FINE", 22),
        granularita_slot_minuti=_int_env("AGENDA_GRANULARITA_SLOT", 30),
        durata_slot_minuti=_int_env("AGENDA_DURATA_SLOT", 60),
        sede_predefinita=sede,
        indirizzi_sedi={sede: indirizzo},
        api_base=os.getenv("API_BASE", "http://127.0.0.1:8000"),
    )
    if settings.ora_fine_giornata <= settings.ora_inizio_giornata:
        raise ValueError("AGENDA_ORA_FINE deve essere successiva a AGENDA_ORA_INIZIO.")
    if settings.granularita_slot_minuti <= 0 or settings.durata_slot_minuti <= 0:
        raise ValueError("Granularità e durata degli slot devono essere positive.")
    return settings


settings = load_settings()
