# ==============================================================================
# REPOSITORIO DE PRODUCTOS
# ==============================================================================
# Encapsula el acceso a la tabla "products" de ledger.json
# Los productos se almacenan como diccionario: {product_id: {datos_producto}}
# ==============================================================================

from typing import List, Optional, Tuple

from app_ledger.models import Product
from app_ledger.repositories.base import TableRepository


class ProductRepository(TableRepository):
    """
    Repositorio del catálogo.

    Formato de datos en ledger.json:
    "products": {
        "9f1c...": {
            "id": "9f1c...",
            "account_id": "acct-1",
            "name": "Crema facial",
            "quantity": 5,
            "price_per_unit": "10.00",
            "points_per_unit": "3",
            "created_at": "2026-01-01T10:00:00+00:00"
        }
    }
    """

    table = 'products'
    entity_cls = Product

    def list_by_name(self, account_id: str) -> List[Product]:
        """Productos de la cuenta ordenados por nombre (sin distinguir mayúsculas)."""
        return sorted(self.list(account_id), key=lambda p: (p.name.lower(), p.id))

    def decrement_if_available(
        self,
        account_id: str,
        product_id: str,
        amount: int
    ) -> Tuple[bool, Optional[Product]]:
        """
        Descuenta stock solo si alcanza: UPDATE ... SET quantity = quantity - N
        WHERE id = ? AND quantity >= N.

        La comprobación y la escritura ocurren bajo el mismo lock, por lo que
        dos descuentos concurrentes nunca dejan el stock negativo.

        Args:
            account_id: Cuenta dueña
            product_id: ID del producto
            amount: Unidades a descontar

        Returns:
            (aplicado, producto). producto es None si no existe en la cuenta;
            si aplicado es False, producto refleja el stock disponible.
        """
        with self.store.transaction() as data:
            row = self._owned_row(data, account_id, product_id)
            if row is None:
                return False, None
            available = int(row.get('quantity', 0) or 0)
            if available < amount:
                return False, Product.from_dict(row)
            row['quantity'] = available - amount
            return True, Product.from_dict(row)
