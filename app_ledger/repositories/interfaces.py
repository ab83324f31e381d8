# ==============================================================================
# INTERFACES DE REPOSITORIOS
# ==============================================================================
#
# Protocolos que cumplen los repositorios. Los servicios dependen de estos
# contratos y no de la implementación JSON concreta:
#
# 1. INDEPENDENCIA DE ALMACENAMIENTO
#    - Cambiar JSON → base de datos solo requiere nuevas implementaciones
#
# 2. TESTING
#    - Fácil crear dobles que implementen estas interfaces
#
# Todas las operaciones reciben account_id y nunca devuelven filas de otra
# cuenta.
# ==============================================================================

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from app_ledger.models import AuditLog, Loan, Order, OrderLine, Product


# ==============================================================================
# ALMACÉN
# ==============================================================================

@runtime_checkable
class IStore(Protocol):
    """Almacén con transacciones de todo-o-nada."""

    def transaction(self) -> AbstractContextManager:
        """Abre una transacción; se confirma al salir sin error."""
        ...

    def read(self) -> AbstractContextManager:
        """Acceso de solo lectura."""
        ...


@runtime_checkable
class ITableRepository(Protocol):
    """Operaciones CRUD comunes filtradas por cuenta y clave primaria."""

    def get(self, account_id: str, record_id: Any) -> Optional[Any]:
        ...

    def list(self, account_id: str, predicate=None) -> List[Any]:
        ...

    def insert(self, entity: Any) -> Any:
        ...

    def update(self, account_id: str, record_id: Any, changes: Dict[str, Any]) -> Optional[Any]:
        ...

    def delete(self, account_id: str, record_id: Any) -> Optional[Any]:
        ...


# ==============================================================================
# INTERFACES ESPECÍFICAS POR DOMINIO
# ==============================================================================

@runtime_checkable
class IProductRepository(ITableRepository, Protocol):
    """Catálogo de productos."""

    def list_by_name(self, account_id: str) -> List[Product]:
        ...

    def decrement_if_available(
        self, account_id: str, product_id: str, amount: int
    ) -> Tuple[bool, Optional[Product]]:
        """
        Descuento condicional atómico: quantity -= amount solo si quantity >= amount.

        Returns:
            (aplicado, producto) - producto es None si no existe
        """
        ...


@runtime_checkable
class IOrderRepository(ITableRepository, Protocol):
    """Pedidos y sus líneas."""

    def get_with_lines(self, account_id: str, order_id: str) -> Optional[Order]:
        ...

    def list_with_lines(self, account_id: str, predicate=None) -> List[Order]:
        ...

    def insert_order(self, order: Order) -> Order:
        """Inserta el pedido y sus líneas juntos."""
        ...

    def lines_for(self, account_id: str, order_id: str) -> List[OrderLine]:
        ...

    def count_lines_for_product(self, account_id: str, product_id: str) -> int:
        ...

    def delete_for_customer(self, account_id: str, customer_id: str) -> int:
        ...


@runtime_checkable
class ILoanRepository(ITableRepository, Protocol):
    """Préstamos a socios."""

    def list_recent_first(self, account_id: str, partner_id: Optional[str] = None) -> List[Loan]:
        """Préstamos por fecha descendente."""
        ...

    def count_by(self, account_id: str, field: str, value: Any) -> int:
        ...

    def delete_where(self, account_id: str, field: str, value: Any) -> int:
        ...

    def find_all_by(self, account_id: str, field: str, value: Any) -> List[Loan]:
        ...


@runtime_checkable
class IAuditRepository(Protocol):
    """Registro de auditoría."""

    def log(
        self,
        log_type: str,
        user: str,
        message: str,
        related_id: str = '',
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None
    ) -> None:
        ...

    def load(self, user: str) -> List[AuditLog]:
        ...
