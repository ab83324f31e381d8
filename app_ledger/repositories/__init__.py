# ==============================================================================
# CAPA DE REPOSITORIOS - Acceso a datos
# ==============================================================================
# Esta capa encapsula todo el acceso a la persistencia (actualmente un único
# documento JSON). Cuando se migre a una base de datos, solo hay que
# modificar esta capa; las interfaces públicas permanecen iguales.
#
# ESTRUCTURA:
# ├── interfaces.py          → Protocolos (contratos de persistencia)
# ├── base.py                → JsonStore (transacciones) y TableRepository
# ├── product_repository.py  → Tabla products
# ├── contact_repository.py  → Tablas customers y partners
# ├── order_repository.py    → Tablas orders y order_lines
# ├── loan_repository.py     → Tabla loans
# └── audit_repository.py    → Lista audit
# ==============================================================================

# Interfaces
from .interfaces import (
    IStore,
    ITableRepository,
    IProductRepository,
    IOrderRepository,
    ILoanRepository,
    IAuditRepository,
)

# Implementaciones concretas (JSON)
from .base import JsonStore, TableRepository
from .product_repository import ProductRepository
from .contact_repository import ContactRepository, CustomerRepository, PartnerRepository
from .order_repository import OrderRepository, OrderLineRepository
from .loan_repository import LoanRepository
from .audit_repository import AuditRepository

__all__ = [
    # Interfaces
    'IStore',
    'ITableRepository',
    'IProductRepository',
    'IOrderRepository',
    'ILoanRepository',
    'IAuditRepository',

    # Clases base
    'JsonStore',
    'TableRepository',

    # Implementaciones JSON
    'ProductRepository',
    'ContactRepository',
    'CustomerRepository',
    'PartnerRepository',
    'OrderRepository',
    'OrderLineRepository',
    'LoanRepository',
    'AuditRepository',
]
