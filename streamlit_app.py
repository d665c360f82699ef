from __future__ import annotations

import os
from datetime import date, datetime, timedelta

import requests
import streamlit as st

st.set_page_config(page_title="Studio Agenda", layout="wide")

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")

GIORNI_SETTIMANA = {1: "Lun", 2: "Mar", 3: "Mer", 4: "Gio", 5: "Ven", 6: "Sab"}
STATI = ["booked", "confirmed", "done", "cancelled", "not_paid"]



# HTTP client

def _raise_for_error(r: requests.Response) -> None:
    # gli errori di dominio arrivano come {"ok": false, "messaggio": "..."}
    if r.status_code >= 400:
        try:
            detail = r.json().get("messaggio")
        except ValueError:
            detail = None
        raise RuntimeError(detail or f"Errore API ({r.status_code}).")


def api_get(path: str, params: dict | None = None) -> dict | list:
    r = requests.get(f"{API_BASE}{path}", params=params, timeout=10)
    _raise_for_error(r)
    return r.json()


def api_send(method: str, path: str, payload: dict | None = None) -> dict:
    r = requests.request(method, f"{API_BASE}{path}", json=payload, timeout=10)
    _raise_for_error(r)
    return r.json()


@st.cache_data(ttl=10)
def load_pazienti() -> list[dict]:
    return api_get("/api/pazienti")


with st.sidebar:
    st.header("Studio Agenda")
    giorno = st.date_input("Giorno", value=date.today(), key="giorno")
    st.divider()
    st.caption(f"API: {API_BASE}")


st.title("Agenda dello studio")

tab1, tab2, tab3 = st.tabs(["Agenda", "Nuovo appuntamento", "Disponibilità"])



# TAB 1 - Agenda del giorno

with tab1:
    st.subheader(f"Appuntamenti del {giorno:%d/%m/%Y}")

    try:
        items = api_get("/api/agenda", params={"giorno": giorno.isoformat()})
        r = api_get("/api/riepilogo", params={"giorno": giorno.isoformat()})
    except Exception as e:
        st.error(f"API non raggiungibile o errore: {e}")
        st.stop()

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Totale", r["totale"])
    c2.metric("Eseguiti", r["eseguiti"])
    c3.metric("Incasso eseguiti", f"€{r['incasso']:.2f}")
    c4.metric("Previsto settimana", f"€{r['incasso_previsto_settimana']:.2f}")

    if not items:
        st.info("Nessun appuntamento per questo giorno.")

    for a in items:
        inizio = datetime.fromisoformat(a["inizio"])
        fine = datetime.fromisoformat(a["fine"])
        luogo = a["sede"] if a["luogo"] == "studio" else "DOMICILIO"
        pagato = " | pagato" if a["pagato"] else ""
        inviato = a["promemoria_inviato_il"]
        avvisato = " | promemoria inviato" if inviato else ""

        with st.expander(
            f"{inizio:%H:%M}-{fine:%H:%M} | {a['paziente'] or '-'} | {a['stato_etichetta']}{pagato}{avvisato}"
        ):
            st.write(f"Luogo: {luogo} | Prezzo: €{a['prezzo']:.2f} | Note: {a['note'] or '-'}")
            if inviato:
                st.caption(f"Promemoria inviato il {datetime.fromisoformat(inviato):%d/%m/%Y %H:%M}")

            b1, b2, b3, b4 = st.columns(4)
            if b1.button("Eseguito / Confermato", key=f"toggle_{a['id']}"):
                try:
                    api_send("POST", f"/api/appuntamenti/{a['id']}/toggle-eseguito")
                    st.rerun()
                except Exception as e:
                    st.error(str(e))

            if b2.button("Segna pagato", key=f"pay_{a['id']}", disabled=a["stato"] != "done" or a["pagato"]):
                try:
                    api_send("PUT", f"/api/appuntamenti/{a['id']}/pagamento", {"pagato": True})
                    st.rerun()
                except Exception as e:
                    st.error(str(e))

            if b3.button("Promemoria WhatsApp", key=f"rem_{a['id']}"):
                try:
                    p = api_get(f"/api/appuntamenti/{a['id']}/promemoria")
                    st.text_area("Messaggio", p["messaggio"], height=180, key=f"msg_{a['id']}")
                    st.link_button("Apri WhatsApp Web", p["url"])
                except Exception as e:
                    st.error(str(e))

            if st.button("Segna promemoria inviato", key=f"sent_{a['id']}"):
                try:
                    api_send("POST", f"/api/appuntamenti/{a['id']}/promemoria-inviato")
                    st.rerun()
                except Exception as e:
                    st.error(str(e))

            if b4.button("Elimina", key=f"del_{a['id']}"):
                try:
                    api_send("DELETE", f"/api/appuntamenti/{a['id']}")
                    st.rerun()
                except Exception as e:
                    st.error(str(e))

            s1, s2 = st.columns(2)
            nuovo_stato = s1.selectbox("Stato", STATI, index=STATI.index(a["stato"]), key=f"stato_{a['id']}")
            if s2.button("Aggiorna stato", key=f"upd_{a['id']}"):
                try:
                    api_send("PUT", f"/api/appuntamenti/{a['id']}/stato", {"stato": nuovo_stato})
                    st.rerun()
                except Exception as e:
                    st.error(str(e))

            m1, m2 = st.columns(2)
            nuova_ora = m1.time_input("Sposta alle", value=inizio.time(), key=f"ora_{a['id']}")
            if m2.button("Sposta", key=f"move_{a['id']}"):
                try:
                    api_send(
                        "POST",
                        f"/api/appuntamenti/{a['id']}/sposta",
                        {"inizio": datetime.combine(inizio.date(), nuova_ora).isoformat()},
                    )
                    st.rerun()
                except Exception as e:
                    st.error(str(e))



# TAB 2 - Nuovo appuntamento

with tab2:
    st.subheader("Crea appuntamento")

    try:
        pazienti = load_pazienti()
    except Exception as e:
        st.error(f"Errore caricamento pazienti: {e}")
        pazienti = []

    paziente = st.selectbox(
        "Paziente",
        options=pazienti,
        format_func=lambda p: f"{p['cognome']} {p['nome']} | {p.get('telefono') or '-'}",
        key="new_paziente",
    )

    colA, colB, colC = st.columns(3)
    with colA:
        data_app = st.date_input("Data", value=giorno, key="new_data")
        ora_app = st.time_input("Ora", value=datetime.now().time().replace(second=0, microsecond=0), key="new_ora")
        durata = st.number_input("Durata (minuti)", min_value=15, max_value=240, value=60, step=15, key="new_durata")
    with colB:
        luogo = st.selectbox("Luogo", ["studio", "domicile"], key="new_luogo")
        sede = st.text_input("Sede", value="", key="new_sede") if luogo == "studio" else None
        indirizzo = st.text_input("Indirizzo domicilio", key="new_indirizzo") if luogo == "domicile" else None
    with colC:
        trattamento = st.selectbox("Trattamento", ["seduta", "macchinario"], key="new_trattamento")
        pagamento = st.selectbox("Pagamento", ["invoiced", "cash"], key="new_pagamento")
        prezzo = st.text_input("Prezzo personalizzato (opzionale)", key="new_prezzo")

    ricorrente = st.checkbox("Ricorrente", key="new_ricorrente")
    giorni: list[int] = []
    fino_a = data_app
    if ricorrente:
        giorni = st.multiselect(
            "Giorni",
            options=list(GIORNI_SETTIMANA),
            format_func=lambda d: GIORNI_SETTIMANA[d],
            key="new_giorni",
        )
        fino_a = st.date_input("Ripeti fino a", value=data_app + timedelta(weeks=4), key="new_fino_a")

    note = st.text_area("Note (opzionale)", height=80, key="new_note")

    if st.button("Crea", key="new_submit", disabled=paziente is None):
        inizio = datetime.combine(data_app, ora_app)
        payload = {
            "paziente_id": paziente["id"],
            "inizio": inizio.isoformat(),
            "fine": (inizio + timedelta(minutes=int(durata))).isoformat(),
            "luogo": luogo,
            "sede": sede or None,
            "indirizzo_domicilio": indirizzo or None,
            "tipo_trattamento": trattamento,
            "tipo_pagamento": pagamento,
            "prezzo": prezzo or None,
            "note": note or None,
        }
        if ricorrente:
            payload["ricorrenza"] = {"giorni_settimana": giorni, "fino_a": fino_a.isoformat()}
        try:
            res = api_send("POST", "/api/appuntamenti", payload)
            if res.get("ok"):
                st.success(res.get("messaggio"))
            else:
                st.warning(res.get("messaggio"))
        except Exception as e:
            st.error(str(e))



# TAB 3 - Disponibilità

with tab3:
    st.subheader("Slot liberi")

    try:
        slots = api_get("/api/slot-liberi", params={"giorno": giorno.isoformat()})
        previsione = api_get("/api/previsione", params={"giorno": giorno.isoformat()})
    except Exception as e:
        st.error(f"Errore disponibilità: {e}")
    else:
        st.write(f"**{previsione['raccomandazione']}** ({previsione['tasso_occupazione']}% occupato)")
        if not slots:
            st.info("Nessuno slot libero.")
        else:
            st.write(", ".join(s["ora"] for s in slots))
