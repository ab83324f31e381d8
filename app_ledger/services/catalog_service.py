# ==============================================================================
# SERVICIO DE CATÁLOGO
# ==============================================================================
# Centraliza la lógica de negocio de productos y stock.
# El stock nunca baja de cero: todo descuento pasa por el update condicional
# atómico del repositorio.
# ==============================================================================

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from app_ledger.errors import InsufficientStockError, NotFoundError, ReferencedError
from app_ledger.models import Product, utcnow
from app_ledger.repositories.base import JsonStore
from app_ledger.repositories.loan_repository import LoanRepository
from app_ledger.repositories.order_repository import OrderRepository
from app_ledger.repositories.product_repository import ProductRepository
from app_ledger.services.stats_service import inventory_totals
from app_ledger.services.audit_service import AuditService
from app_ledger.services.validation import money, non_negative_decimal, non_negative_int, positive_int, require_text

logger = logging.getLogger(__name__)


class CatalogService:
    """
    Servicio del catálogo de productos.

    Responsabilidades:
    - CRUD de productos
    - Descuento de stock (atómico, nunca negativo)
    - Valorización del inventario
    """

    # Campos editables y su conversión
    EDITABLE_FIELDS = ('name', 'quantity', 'price_per_unit', 'points_per_unit')

    def __init__(
        self,
        store: JsonStore,
        product_repo: ProductRepository,
        order_repo: OrderRepository,
        loan_repo: LoanRepository,
        audit_service: Optional[AuditService] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Args:
            store: Almacén (para transacciones que abarcan varias tablas)
            product_repo: Repositorio de productos
            order_repo: Repositorio de pedidos (guardia de eliminación)
            loan_repo: Repositorio de préstamos (guardia de eliminación)
            audit_service: Servicio de auditoría (opcional)
            clock: Función que retorna el instante actual
        """
        self.store = store
        self.product_repo = product_repo
        self.order_repo = order_repo
        self.loan_repo = loan_repo
        self.audit_service = audit_service
        self.clock = clock

    def _clean(self, attrs: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        """Valida y convierte atributos; en modo parcial solo los presentes."""
        cleaned: Dict[str, Any] = {}
        if not partial or 'name' in attrs:
            cleaned['name'] = require_text(attrs, 'name')
        if 'quantity' in attrs or not partial:
            cleaned['quantity'] = non_negative_int(attrs.get('quantity', 0), 'quantity')
        if 'price_per_unit' in attrs or not partial:
            cleaned['price_per_unit'] = money(attrs.get('price_per_unit', 0), 'price_per_unit')
        if 'points_per_unit' in attrs or not partial:
            cleaned['points_per_unit'] = non_negative_decimal(attrs.get('points_per_unit', 0), 'points_per_unit')
        return cleaned

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_product(self, account_id: str, product_id: str) -> Product:
        """
        Obtiene un producto de la cuenta.

        Raises:
            NotFoundError: Si no existe o pertenece a otra cuenta
        """
        product = self.product_repo.get(account_id, product_id)
        if product is None:
            raise NotFoundError('Producto', product_id)
        return product

    def list_products(self, account_id: str) -> List[Product]:
        """Productos ordenados por nombre."""
        return self.product_repo.list_by_name(account_id)

    def inventory_valuation(self, account_id: str) -> Dict[str, Any]:
        """
        Valor total del inventario a precios actuales.

        Returns:
            {'products', 'units', 'total_value', 'total_points'}
        """
        return inventory_totals(self.product_repo.list(account_id))

    # =========================================================================
    # OPERACIONES DE PRODUCTOS
    # =========================================================================

    def create_product(self, account_id: str, attrs: Dict[str, Any]) -> Product:
        """
        Crea un producto.

        Args:
            attrs: name (obligatorio), quantity, price_per_unit, points_per_unit

        Raises:
            ValidationError: Si falta el nombre o algún valor es negativo
        """
        cleaned = self._clean(attrs, partial=False)
        product = Product(
            id=uuid.uuid4().hex,
            account_id=account_id,
            created_at=self.clock(),
            **cleaned,
        )
        with self.store.transaction():
            self.product_repo.insert(product)
            if self.audit_service:
                self.audit_service.log_product_created(account_id, product.id, product.name, product.quantity)
        logger.info("Producto creado: %s (%s)", product.name, product.id)
        return product

    def update_product(self, account_id: str, product_id: str, attrs: Dict[str, Any]) -> Product:
        """
        Edita un producto. Las líneas de pedido y préstamos existentes
        conservan su foto de precio/puntos.

        Raises:
            NotFoundError: Si el producto no existe en la cuenta
            ValidationError: Si algún valor es inválido
        """
        cleaned = self._clean({k: v for k, v in attrs.items() if k in self.EDITABLE_FIELDS}, partial=True)
        with self.store.transaction():
            current = self.get_product(account_id, product_id)
            changes = {
                field: (getattr(current, field), value)
                for field, value in cleaned.items()
                if getattr(current, field) != value
            }
            # Decimal se persiste como string
            updates = {
                field: str(value) if isinstance(value, Decimal) else value
                for field, value in cleaned.items()
            }
            updated = self.product_repo.update(account_id, product_id, updates)
            if self.audit_service:
                self.audit_service.log_product_updated(account_id, product_id, updated.name, changes)
        return updated

    def delete_product(self, account_id: str, product_id: str) -> Product:
        """
        Elimina un producto sin referencias.

        Raises:
            NotFoundError: Si el producto no existe en la cuenta
            ReferencedError: Si alguna línea de pedido o préstamo lo referencia
        """
        with self.store.transaction():
            product = self.get_product(account_id, product_id)
            lines = self.order_repo.count_lines_for_product(account_id, product_id)
            loans = self.loan_repo.count_by(account_id, 'product_id', product_id)
            if lines or loans:
                raise ReferencedError(
                    f"El producto {product.name} está referenciado por "
                    f"{lines} líneas de pedido y {loans} préstamos",
                    product_id=product_id,
                    lines=lines,
                    loans=loans,
                )
            self.product_repo.delete(account_id, product_id)
            if self.audit_service:
                self.audit_service.log_product_deleted(account_id, product_id, product.name)
        logger.info("Producto eliminado: %s (%s)", product.name, product_id)
        return product

    # =========================================================================
    # CONTROL DE STOCK
    # =========================================================================

    def decrement_stock(self, account_id: str, product_id: str, amount: Any, reason: str = 'ajuste') -> Product:
        """
        Descuenta stock con un update condicional atómico.

        Args:
            amount: Unidades a descontar (>= 1)
            reason: Origen del descuento para la auditoría

        Returns:
            Producto con el stock resultante

        Raises:
            ValidationError: Si amount <= 0
            NotFoundError: Si el producto no existe en la cuenta
            InsufficientStockError: Si amount supera el stock; el stock no cambia
        """
        amount = positive_int(amount, 'amount')
        with self.store.transaction():
            applied, product = self.product_repo.decrement_if_available(account_id, product_id, amount)
            if product is None:
                raise NotFoundError('Producto', product_id)
            if not applied:
                raise InsufficientStockError(product_id, amount, product.quantity)
            if self.audit_service:
                self.audit_service.log_stock_decrement(
                    account_id, product_id, product.name, amount, product.quantity, reason
                )
        return product
