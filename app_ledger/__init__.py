# ==============================================================================
# APP LEDGER - Catálogo, pedidos y préstamos por cuenta
# ==============================================================================
# ESTRUCTURA:
#   app_ledger/
#   ├── main.py              <- API Flask (create_app)
#   ├── config.py            <- Variables LEDGER_*
#   ├── app_container.py     <- Inyección de dependencias
#   ├── errors.py            <- Jerarquía LedgerError
#   ├── performance_logger.py
#   ├── models/              <- Dataclasses del dominio
#   ├── repositories/        <- Persistencia (ledger.json)
#   └── services/            <- Lógica de negocio
# ==============================================================================

__version__ = '1.0.0'
