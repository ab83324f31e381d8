# ==============================================================================
# SERVICIO DE AUDITORÍA
# ==============================================================================
# Centraliza toda la lógica de registro de auditoría.
# Formatea mensajes humanizados y categoriza eventos.
# ==============================================================================

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from app_ledger.models import AuditLog, AuditType, utcnow
from app_ledger.repositories.audit_repository import AuditRepository


class AuditService:
    """
    Servicio para registro y consulta de auditoría.

    Centraliza:
    - Registro de eventos con mensajes humanizados
    - Categorización de eventos (PRODUCTO, STOCK, PEDIDO, PAGO, PRESTAMO, REGISTRO)
    - Consulta de logs por cuenta

    Cada método recibe la cuenta como primer argumento; se guarda en 'user'.
    """

    def __init__(self, audit_repo: AuditRepository, clock: Callable[[], datetime] = utcnow):
        """
        Args:
            audit_repo: Repositorio de auditoría
            clock: Reloj de los servicios; fecha los eventos
        """
        self.audit_repo = audit_repo
        self.clock = clock

    # =========================================================================
    # REGISTRO DE EVENTOS
    # =========================================================================

    def log(
        self,
        log_type: AuditType,
        account_id: str,
        message: str,
        related_id: str = '',
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Registra un evento de auditoría genérico."""
        self.audit_repo.log(AuditType(log_type).value, account_id, message, related_id, details, self.clock())

    # --- Catálogo ------------------------------------------------------------

    def log_product_created(self, account_id: str, product_id: str, name: str, quantity: int) -> None:
        message = f"Producto creado: {name} - Stock inicial: {quantity}"
        self.log(AuditType.PRODUCTO, account_id, message, product_id, {'name': name, 'quantity': quantity})

    def log_product_updated(self, account_id: str, product_id: str, name: str, changes: Dict[str, Any]) -> None:
        """
        Registra la edición de un producto.

        Args:
            changes: {campo: (anterior, nuevo)} solo con los campos que cambiaron
        """
        if not changes:
            return
        fields = ', '.join(sorted(changes))
        message = f"Producto actualizado: {name} ({fields})"
        details = {k: {'from': str(old), 'to': str(new)} for k, (old, new) in changes.items()}
        self.log(AuditType.PRODUCTO, account_id, message, product_id, details)

    def log_product_deleted(self, account_id: str, product_id: str, name: str) -> None:
        self.log(AuditType.PRODUCTO, account_id, f"Producto eliminado: {name}", product_id)

    def log_stock_decrement(
        self,
        account_id: str,
        product_id: str,
        name: str,
        amount: int,
        remaining: int,
        reason: str
    ) -> None:
        """
        Registra una salida de stock.

        Args:
            amount: Unidades descontadas
            remaining: Stock resultante
            reason: Origen del descuento (pedido, préstamo, ajuste)
        """
        message = f"Stock de {name}: -{amount} ({reason}) - Quedan {remaining}"
        self.log(
            AuditType.STOCK, account_id, message, product_id,
            {'amount': amount, 'remaining': remaining, 'reason': reason}
        )

    # --- Pedidos -------------------------------------------------------------

    def log_order_created(
        self,
        account_id: str,
        order_id: str,
        customer_name: str,
        total_price: Decimal,
        total_points: Decimal,
        lines_count: int
    ) -> None:
        message = (
            f"Pedido {order_id} creado para {customer_name} - Total: {total_price} "
            f"- Puntos: {total_points} - {lines_count} líneas"
        )
        self.log(
            AuditType.PEDIDO, account_id, message, order_id,
            {'total_price': str(total_price), 'total_points': str(total_points), 'lines': lines_count}
        )

    def log_order_status_change(self, account_id: str, order_id: str, old_status: str, new_status: str) -> None:
        message = f"Pedido {order_id}: {old_status} → {new_status}"
        self.log(AuditType.PEDIDO, account_id, message, order_id, {'from': old_status, 'to': new_status})

    def log_order_line_skipped(self, account_id: str, order_id: str, product_id: str, quantity: int) -> None:
        """Registra una línea omitida en la entrega porque su producto ya no existe."""
        message = (
            f"Pedido {order_id}: línea omitida en la entrega, el producto "
            f"{product_id} ya no existe ({quantity} unidades sin descontar)"
        )
        self.log(
            AuditType.STOCK, account_id, message, order_id,
            {'product_id': product_id, 'quantity': quantity, 'skipped': True}
        )

    def log_payment_flag(self, account_id: str, order_id: str, paid: bool) -> None:
        message = f"Pedido {order_id} marcado como {'pagado' if paid else 'no pagado'}"
        self.log(AuditType.PAGO, account_id, message, order_id, {'is_paid': paid})

    # --- Préstamos -----------------------------------------------------------

    def log_loan_created(
        self,
        account_id: str,
        loan_id: str,
        partner_name: str,
        product_name: str,
        quantity: int
    ) -> None:
        message = f"Préstamo a {partner_name}: {quantity} x {product_name}"
        self.log(AuditType.PRESTAMO, account_id, message, loan_id, {'quantity': quantity})

    def log_loan_deleted(self, account_id: str, loan_id: str, quantity: int) -> None:
        message = f"Préstamo {loan_id} eliminado ({quantity} unidades, sin reponer stock)"
        self.log(AuditType.PRESTAMO, account_id, message, loan_id, {'quantity': quantity})

    # --- Clientes y socios ---------------------------------------------------

    def log_contact_saved(self, account_id: str, kind: str, contact_id: str, name: str, created: bool) -> None:
        action = 'creado' if created else 'actualizado'
        self.log(AuditType.REGISTRO, account_id, f"{kind.capitalize()} {action}: {name}", contact_id)

    def log_contact_deleted(self, account_id: str, kind: str, contact_id: str, name: str, cascaded: int) -> None:
        """
        Args:
            kind: 'cliente' o 'socio'
            cascaded: Registros dependientes eliminados junto al contacto
        """
        message = f"{kind.capitalize()} eliminado: {name} ({cascaded} registros dependientes)"
        self.log(AuditType.REGISTRO, account_id, message, contact_id, {'cascaded': cascaded})

    # =========================================================================
    # CONSULTA
    # =========================================================================

    def get_logs(self, account_id: str, log_type: Optional[str] = None, limit: Optional[int] = None) -> List[AuditLog]:
        """
        Logs de la cuenta, más recientes primero.

        Args:
            log_type: Filtra por tipo si se indica
            limit: Máximo de registros a devolver
        """
        if log_type:
            logs = self.audit_repo.get_logs_by_type(account_id, log_type)
        else:
            logs = self.audit_repo.load(account_id)
        return logs[:limit] if limit else logs
