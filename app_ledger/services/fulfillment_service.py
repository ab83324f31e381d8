# ==============================================================================
# SERVICIO DE CUMPLIMIENTO (máquina de estados del pedido)
# ==============================================================================
#
#   pending ──► delivered   (terminal: descuenta stock, marca pagado)
#      │
#      └──────► cancelled   (terminal: sin efecto en stock)
#
# Ningún estado terminal admite transiciones.
#
# ENTREGA:
# - Se escribe primero el estado y luego los descuentos, en la misma
#   transacción del almacén.
# - Cada línea descuenta su producto con el update condicional atómico.
# - Una línea cuyo producto ya no existe se omite (warning + auditoría) y la
#   entrega continúa.
# - Si alguna línea no tiene stock suficiente, la entrega completa se
#   revierte: el pedido sigue pendiente y ningún stock cambia.
# ==============================================================================

import logging
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, Optional

from app_ledger.errors import InsufficientStockError, InvalidTransitionError, NotFoundError, ValidationError
from app_ledger.models import TERMINAL_STATUSES, Order, OrderStatus, utcnow
from app_ledger.performance_logger import profile_function
from app_ledger.repositories.base import JsonStore
from app_ledger.repositories.order_repository import OrderRepository
from app_ledger.services.audit_service import AuditService
from app_ledger.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)


# Transiciones permitidas por estado de origen
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset([OrderStatus.DELIVERED, OrderStatus.CANCELLED]),
    **{status: frozenset() for status in TERMINAL_STATUSES},
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class FulfillmentService:
    """
    Avanza pedidos por su ciclo de vida y aplica los efectos en stock.
    """

    def __init__(
        self,
        store: JsonStore,
        order_repo: OrderRepository,
        catalog_service: CatalogService,
        audit_service: Optional[AuditService] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.order_repo = order_repo
        self.catalog_service = catalog_service
        self.audit_service = audit_service
        self.clock = clock

    @profile_function(name="Cambiar estado de pedido")
    def transition(self, account_id: str, order_id: str, new_status: Any) -> Order:
        """
        Cambia el estado de un pedido.

        Args:
            account_id: Cuenta dueña
            order_id: Pedido a avanzar
            new_status: 'delivered' o 'cancelled'

        Returns:
            Pedido actualizado con sus líneas

        Raises:
            ValidationError: Si new_status no es un estado conocido
            NotFoundError: Si el pedido no existe en la cuenta
            InvalidTransitionError: Si la transición no está permitida
            InsufficientStockError: Si una línea supera el stock (nada cambia)
        """
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise ValidationError(f"Estado desconocido: {new_status}", field='status')

        with self.store.transaction():
            order = self.order_repo.get_with_lines(account_id, order_id)
            if order is None:
                raise NotFoundError('Pedido', order_id)
            if not can_transition(order.status, target):
                raise InvalidTransitionError(order_id, order.status.value, target.value)

            changes: Dict[str, Any] = {'status': target.value}
            if target == OrderStatus.DELIVERED:
                changes['completed_at'] = self.clock().isoformat()
                # Entregar implica pago liquidado
                changes['is_paid'] = True
            self.order_repo.update(account_id, order_id, changes)

            if target == OrderStatus.DELIVERED:
                self._apply_stock(account_id, order)

            if self.audit_service:
                self.audit_service.log_order_status_change(account_id, order_id, order.status.value, target.value)

        logger.info("Pedido %s: %s -> %s", order_id, order.status.value, target.value)
        return self.order_repo.get_with_lines(account_id, order_id)

    def _apply_stock(self, account_id: str, order: Order) -> None:
        """Descuenta el stock de cada línea del pedido."""
        reason = f"pedido {order.id}"
        for line in order.lines:
            try:
                self.catalog_service.decrement_stock(account_id, line.product_id, line.quantity, reason)
            except NotFoundError:
                logger.warning(
                    "Pedido %s: producto %s inexistente, línea %s omitida (%d unidades)",
                    order.id, line.product_id, line.id, line.quantity
                )
                if self.audit_service:
                    self.audit_service.log_order_line_skipped(account_id, order.id, line.product_id, line.quantity)
            except InsufficientStockError as exc:
                logger.warning(
                    "Pedido %s: entrega revertida, stock insuficiente de %s (pedido %d, disponible %d)",
                    order.id, exc.product_id, exc.requested, exc.available
                )
                raise
