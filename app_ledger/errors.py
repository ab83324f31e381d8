# ==============================================================================
# ERRORES DEL LEDGER
# ==============================================================================
# Todas las operaciones del núcleo fallan con una subclase de LedgerError.
# La capa HTTP (main.py) las traduce a {"ok": False, "kind": ..., "error": ...}
# con el código de estado definido en cada clase.
# ==============================================================================

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """
    Error base del ledger.

    Attributes:
        kind: Nombre estable del tipo de error (se expone al cliente)
        detail: Mensaje legible para humanos
        status_code: Código HTTP con el que se reporta
    """

    kind = 'LedgerError'
    status_code = 400

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para la respuesta JSON."""
        return {'ok': False, 'kind': self.kind, 'error': self.detail}


class ValidationError(LedgerError):
    """Campo requerido ausente o inválido (ej: cantidad <= 0)."""

    kind = 'ValidationError'
    status_code = 400


class InsufficientStockError(LedgerError):
    """El descuento solicitado supera el stock disponible."""

    kind = 'InsufficientStockError'
    status_code = 409

    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            f"Stock insuficiente para el producto {product_id}. "
            f"Solicitado: {requested}, Disponible: {available}",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidTransitionError(LedgerError):
    """Cambio de estado no permitido por la máquina de estados del pedido."""

    kind = 'InvalidTransitionError'
    status_code = 409

    def __init__(self, order_id: str, current: str, requested: str):
        super().__init__(
            f"El pedido {order_id} no puede pasar de {current} a {requested}",
            order_id=order_id,
            current=current,
            requested=requested,
        )


class ReferencedError(LedgerError):
    """Eliminación bloqueada porque existen registros que dependen del objetivo."""

    kind = 'ReferencedError'
    status_code = 409


class NotFoundError(LedgerError):
    """
    ID desconocido o perteneciente a otra cuenta.
    Ambos casos producen el mismo mensaje para no revelar datos ajenos.
    """

    kind = 'NotFoundError'
    status_code = 404

    def __init__(self, entity: str, entity_id: Optional[str]):
        super().__init__(f"{entity} {entity_id} no encontrado", entity=entity)
        self.entity = entity
        self.entity_id = entity_id


class LedgerTimeoutError(LedgerError):
    """No se pudo obtener el lock del almacenamiento dentro del tiempo límite."""

    kind = 'LedgerTimeoutError'
    status_code = 503
