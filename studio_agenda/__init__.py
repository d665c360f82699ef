"""
Agenda e fatturazione di uno studio a professionista singolo.

Struttura:
- config.py         : impostazioni da variabili d'ambiente / .env
- logging_config.py : logging JSON strutturato
- db.py             : engine e sessioni SQLAlchemy
- models.py         : modelli ORM e enum
- errors.py         : errori di dominio con messaggio per l'operatore
- pricing.py        : tariffario e prezzo personalizzato
- ricorrenze.py     : espansione degli appuntamenti ricorrenti
- slot.py           : slot liberi e conflitti di orario
- stato.py          : stato dell'appuntamento e vincolo sul pagamento
- messaggi.py       : testi di promemoria/conferma da modello
- messaging.py      : apertura di WhatsApp Web con il messaggio pronto
- store.py          : interfaccia di persistenza e implementazione SQL
- services.py       : use case (creazione, spostamento, stato, promemoria, agenda)
- seed.py           : dati iniziali (modelli di messaggio)
- api_main.py       : API REST (FastAPI)
- cli.py            : uso da riga di comando
"""
