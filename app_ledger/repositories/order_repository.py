# ==============================================================================
# REPOSITORIO DE PEDIDOS
# ==============================================================================
# Encapsula el acceso a las tablas "orders" y "order_lines" de ledger.json.
# El pedido es dueño de sus líneas: se crean y se eliminan juntos.
# ==============================================================================

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from app_ledger.models import Order, OrderLine
from app_ledger.repositories.base import TableRepository


class OrderLineRepository(TableRepository):
    """Tabla "order_lines": {line_id: {id, account_id, order_id, product_id, ...}}"""

    table = 'order_lines'
    entity_cls = OrderLine


class OrderRepository(TableRepository):
    """
    Repositorio de pedidos.

    Formato de datos en ledger.json:
    "orders": {
        "b71e...": {
            "id": "b71e...",
            "account_id": "acct-1",
            "customer_id": "c2a0...",
            "delivery_date": "2026-02-01",
            "status": "pending",
            "is_paid": false,
            "total_points": "9",
            "total_price": "30.00",
            "completed_at": null,
            "created_at": "2026-01-20T09:15:00+00:00"
        }
    }

    Las líneas viven en "order_lines" con order_id apuntando al pedido.
    """

    table = 'orders'
    entity_cls = Order

    def __init__(self, store):
        super().__init__(store)
        self.lines = OrderLineRepository(store)

    def _to_row(self, entity: Order) -> Dict[str, Any]:
        # Las líneas se guardan en su propia tabla
        return entity.to_dict(include_lines=False)

    def _attach_lines(self, data: Dict[str, Any], account_id: str, orders: List[Order]) -> List[Order]:
        by_order: Dict[str, List[OrderLine]] = defaultdict(list)
        for row in data.get('order_lines', {}).values():
            if row.get('account_id') == account_id:
                by_order[row.get('order_id')].append(OrderLine.from_dict(row))
        for order in orders:
            order.lines = by_order.get(order.id, [])
        return orders

    def get_with_lines(self, account_id: str, order_id: str) -> Optional[Order]:
        """
        Obtiene un pedido con sus líneas.

        Returns:
            Pedido o None si no existe en la cuenta
        """
        with self.store.read() as data:
            row = self._owned_row(data, account_id, order_id)
            if row is None:
                return None
            return self._attach_lines(data, account_id, [Order.from_dict(row)])[0]

    def list_with_lines(
        self,
        account_id: str,
        predicate: Optional[Callable[[Dict[str, Any]], bool]] = None
    ) -> List[Order]:
        """Lista pedidos de la cuenta (filtrados por predicate) con sus líneas."""
        with self.store.read() as data:
            orders = [
                Order.from_dict(row)
                for row in self._rows(data).values()
                if row.get('account_id') == account_id and (predicate is None or predicate(row))
            ]
            return self._attach_lines(data, account_id, orders)

    def insert_order(self, order: Order) -> Order:
        """
        Inserta el pedido y luego sus líneas en una sola transacción.
        Si una línea falla, el pedido tampoco queda guardado.
        """
        with self.store.transaction():
            self.insert(order)
            for line in order.lines:
                self.lines.insert(line)
        return order

    def lines_for(self, account_id: str, order_id: str) -> List[OrderLine]:
        return self.lines.find_all_by(account_id, 'order_id', order_id)

    def count_lines_for_product(self, account_id: str, product_id: str) -> int:
        """Cantidad de líneas (de cualquier estado) que referencian el producto."""
        return self.lines.count_by(account_id, 'product_id', product_id)

    def delete_with_lines(self, account_id: str, order_id: str) -> Optional[Order]:
        """Elimina el pedido y sus líneas juntos."""
        with self.store.transaction():
            order = self.delete(account_id, order_id)
            if order is not None:
                self.lines.delete_where(account_id, 'order_id', order_id)
            return order

    def delete_for_customer(self, account_id: str, customer_id: str) -> int:
        """
        Elimina todos los pedidos del cliente con sus líneas.

        Returns:
            Cantidad de pedidos eliminados
        """
        with self.store.transaction():
            orders = self.find_all_by(account_id, 'customer_id', customer_id)
            for order in orders:
                self.delete_with_lines(account_id, order.id)
            return len(orders)
