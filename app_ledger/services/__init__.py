# ==============================================================================
# CAPA DE SERVICIOS - Lógica de negocio
# ==============================================================================
# Esta capa contiene TODA la lógica de negocio del ledger.
#
# PRINCIPIOS:
# 1. Los servicios orquestan operaciones entre repositorios
# 2. Aplican reglas de negocio y validaciones
# 3. Las rutas (controllers) solo llaman a servicios
# 4. Toda operación recibe account_id explícito como primer argumento
# 5. Los fallos se lanzan como subclases de LedgerError (app_ledger.errors)
#
# ESTRUCTURA:
# ├── catalog_service.py     → Productos, stock, valorización
# ├── registry_service.py    → Clientes y socios (eliminación en cascada)
# ├── order_service.py       → Pedidos con snapshot de precios, pago
# ├── fulfillment_service.py → Máquina de estados y descuentos de stock
# ├── loan_service.py        → Préstamos a socios
# ├── stats_service.py       → Agregaciones (panel, series, totales)
# ├── report_service.py      → Filas planas de reportes
# ├── audit_service.py       → Logs de actividad
# └── validation.py          → Conversión y validación de entradas
# ==============================================================================

from app_ledger.services.audit_service import AuditService
from app_ledger.services.catalog_service import CatalogService
from app_ledger.services.registry_service import RegistryService
from app_ledger.services.order_service import OrderService
from app_ledger.services.fulfillment_service import FulfillmentService
from app_ledger.services.loan_service import LoanService
from app_ledger.services.stats_service import StatsService
from app_ledger.services.report_service import ReportService

__all__ = [
    'AuditService',
    'CatalogService',
    'RegistryService',
    'OrderService',
    'FulfillmentService',
    'LoanService',
    'StatsService',
    'ReportService',
]
