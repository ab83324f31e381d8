# ==============================================================================
# SERVICIO DE PEDIDOS
# ==============================================================================
# Crea pedidos con la foto (snapshot) de precio y puntos de cada producto.
# Los totales se calculan una sola vez, al crear, y se persisten.
#
# FLUJO DE CREACIÓN:
# 1. Validar cliente y líneas
# 2. Copiar precio/puntos actuales de cada producto a la línea
# 3. Sumar totales
# 4. Guardar pedido (pending) y luego sus líneas, en una transacción
# ==============================================================================

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from app_ledger.errors import NotFoundError, ValidationError
from app_ledger.models import Order, OrderLine, OrderStatus, utcnow
from app_ledger.performance_logger import profile_function
from app_ledger.repositories.base import JsonStore
from app_ledger.repositories.contact_repository import CustomerRepository
from app_ledger.repositories.order_repository import OrderRepository
from app_ledger.repositories.product_repository import ProductRepository
from app_ledger.services.audit_service import AuditService
from app_ledger.services.validation import as_bool, optional_date, positive_int

logger = logging.getLogger(__name__)


class OrderService:
    """
    Servicio del libro de pedidos.

    Responsabilidades:
    - Crear pedidos con snapshot de precios
    - Marcar pago (sin efectos en stock)
    - Consultas: historial y vista por fecha de entrega
    """

    def __init__(
        self,
        store: JsonStore,
        order_repo: OrderRepository,
        product_repo: ProductRepository,
        customer_repo: CustomerRepository,
        audit_service: Optional[AuditService] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.order_repo = order_repo
        self.product_repo = product_repo
        self.customer_repo = customer_repo
        self.audit_service = audit_service
        self.clock = clock

    # =========================================================================
    # CREACIÓN
    # =========================================================================

    def _normalize_lines(self, lines: Iterable[Any]) -> List[Dict[str, Any]]:
        """
        Acepta [{'product_id': ..., 'quantity': ...}] y valida cada línea.

        Raises:
            ValidationError: Si no hay líneas o alguna es inválida
        """
        if not lines:
            raise ValidationError("El pedido debe tener al menos una línea", field='lines')
        normalized = []
        for index, raw in enumerate(lines):
            if not isinstance(raw, dict):
                raise ValidationError(f"Línea {index + 1} inválida", field='lines')
            product_id = raw.get('product_id')
            if not product_id:
                raise ValidationError(f"Línea {index + 1}: falta product_id", field='product_id')
            normalized.append({
                'product_id': str(product_id),
                'quantity': positive_int(raw.get('quantity'), 'quantity'),
            })
        return normalized

    @profile_function(name="Crear pedido")
    def create_order(
        self,
        account_id: str,
        customer_id: str,
        lines: Iterable[Dict[str, Any]],
        delivery_date: Any = None,
        is_paid: Any = False
    ) -> Order:
        """
        Crea un pedido pendiente.

        Args:
            account_id: Cuenta dueña
            customer_id: Cliente del pedido
            lines: [{'product_id', 'quantity'}], quantity >= 1
            delivery_date: Fecha de entrega comprometida (YYYY-MM-DD)
            is_paid: Marca de pago inicial

        Returns:
            Pedido creado con sus líneas

        Raises:
            ValidationError: Si alguna línea o campo es inválido
            NotFoundError: Si el cliente o algún producto no existe en la cuenta
        """
        normalized = self._normalize_lines(lines)
        delivery = optional_date(delivery_date, 'delivery_date')
        paid = as_bool(is_paid, 'is_paid')

        with self.store.transaction():
            customer = self.customer_repo.get(account_id, customer_id)
            if customer is None:
                raise NotFoundError('Cliente', customer_id)

            order = Order(
                id=uuid.uuid4().hex,
                account_id=account_id,
                customer_id=customer_id,
                delivery_date=delivery,
                status=OrderStatus.PENDING,
                is_paid=paid,
                completed_at=None,
                created_at=self.clock(),
            )
            for item in normalized:
                product = self.product_repo.get(account_id, item['product_id'])
                if product is None:
                    raise NotFoundError('Producto', item['product_id'])
                order.lines.append(OrderLine(
                    id=uuid.uuid4().hex,
                    account_id=account_id,
                    order_id=order.id,
                    product_id=product.id,
                    quantity=item['quantity'],
                    points_at_sale=product.points_per_unit,
                    price_at_sale=product.price_per_unit,
                ))
            order.calculate_totals()

            # Pedido y líneas se confirman juntos o no se confirman
            self.order_repo.insert_order(order)
            if self.audit_service:
                self.audit_service.log_order_created(
                    account_id, order.id, customer.name,
                    order.total_price, order.total_points, len(order.lines)
                )
        logger.info("Pedido %s creado (%d líneas, total %s)", order.id, len(order.lines), order.total_price)
        return order

    # =========================================================================
    # PAGO
    # =========================================================================

    def set_paid(self, account_id: str, order_id: str, paid: Any) -> Order:
        """
        Cambia la marca de pago. No afecta stock ni estado.

        Raises:
            NotFoundError: Si el pedido no existe en la cuenta
        """
        flag = as_bool(paid, 'is_paid')
        with self.store.transaction():
            order = self.order_repo.update(account_id, order_id, {'is_paid': flag})
            if order is None:
                raise NotFoundError('Pedido', order_id)
            if self.audit_service:
                self.audit_service.log_payment_flag(account_id, order_id, flag)
        return self.get_order(account_id, order_id)

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_order(self, account_id: str, order_id: str) -> Order:
        """
        Pedido con sus líneas.

        Raises:
            NotFoundError: Si no existe o pertenece a otra cuenta
        """
        order = self.order_repo.get_with_lines(account_id, order_id)
        if order is None:
            raise NotFoundError('Pedido', order_id)
        return order

    def list_orders(
        self,
        account_id: str,
        status: Optional[str] = None,
        created_since: Optional[datetime] = None
    ) -> List[Order]:
        """
        Historial de pedidos, más recientes primero.

        Args:
            status: Filtra por estado (pending, delivered, cancelled)
            created_since: Solo pedidos creados desde este instante
        """
        if status is not None:
            try:
                status = OrderStatus(status).value
            except ValueError:
                raise ValidationError(f"Estado desconocido: {status}", field='status')

        def matches(row: Dict[str, Any]) -> bool:
            return status is None or row.get('status') == status

        orders = self.order_repo.list_with_lines(account_id, matches)
        if created_since is not None:
            orders = [o for o in orders if o.created_at is not None and o.created_at >= created_since]
        return sorted(orders, key=lambda o: (o.created_at.isoformat() if o.created_at else '', o.id), reverse=True)

    def list_recent_orders(self, account_id: str, days: int, status: Optional[str] = None) -> List[Order]:
        """Historial de los últimos N días (filtros 'last30' / 'last90')."""
        if days < 1:
            raise ValidationError("days debe ser mayor que 0", field='days')
        return self.list_orders(account_id, status, self.clock() - timedelta(days=days))

    def list_orders_by_delivery(self, account_id: str, status: Optional[str] = None) -> List[Order]:
        """
        Pedidos por fecha de entrega ascendente; los que no tienen fecha al final.
        """
        orders = self.list_orders(account_id, status)
        return sorted(orders, key=lambda o: (o.delivery_date is None, o.delivery_date or date.min))
