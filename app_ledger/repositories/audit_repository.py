# ==============================================================================
# REPOSITORIO DE AUDITORÍA
# ==============================================================================
# Encapsula el acceso a la lista "audit" de ledger.json
# La auditoría se almacena como lista: [{log1}, {log2}, ...] (más reciente primero)
# ==============================================================================

from datetime import datetime
from typing import Any, Dict, List, Optional

from app_ledger.models import AuditLog
from app_ledger.repositories.base import JsonStore


class AuditRepository:
    """
    Repositorio del log de auditoría.

    Formato de datos en ledger.json:
    "audit": [
        {
            "type": "PEDIDO",
            "user": "acct-1",
            "message": "Pedido b71e... entregado",
            "timestamp": "2026-01-01T10:00:00+00:00",
            "related_id": "b71e...",
            "details": {...}
        }
    ]

    Las entradas se escriben dentro de la transacción que las origina:
    si la operación se revierte, su entrada de auditoría también.
    """

    # Límite de registros por cuenta para evitar archivos muy grandes
    MAX_LOGS = 10000

    def __init__(self, store: JsonStore):
        self.store = store

    def log(
        self,
        log_type: str,
        user: str,
        message: str,
        related_id: str = '',
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None
    ) -> None:
        """
        Registra un nuevo evento de auditoría.

        Args:
            log_type: Tipo de evento (PRODUCTO, PEDIDO, STOCK, PAGO, PRESTAMO, REGISTRO)
            user: Cuenta que realizó la acción
            message: Mensaje descriptivo humanizado
            related_id: ID relacionado (pedido, producto, préstamo)
            details: Detalles adicionales
            timestamp: Momento del evento (por defecto, ahora en UTC)
        """
        entry = AuditLog(
            type=log_type,
            user=user or 'sistema',
            message=message,
            timestamp=timestamp.isoformat() if timestamp else '',
            related_id=related_id or '',
            details=details or {},
        )
        with self.store.transaction() as data:
            logs = data.setdefault('audit', [])
            logs.insert(0, entry.to_dict())
            self._trim(logs, entry.user)

    def _trim(self, logs: List[Dict[str, Any]], user: str) -> None:
        """Mantiene solo los últimos MAX_LOGS registros de la cuenta."""
        seen = 0
        kept = []
        for row in logs:
            if row.get('user') == user:
                seen += 1
                if seen > self.MAX_LOGS:
                    continue
            kept.append(row)
        if seen > self.MAX_LOGS:
            logs[:] = kept

    def load(self, user: str) -> List[AuditLog]:
        """
        Logs de una cuenta, más recientes primero.

        Args:
            user: Cuenta dueña
        """
        with self.store.read() as data:
            return [AuditLog.from_dict(row) for row in data.get('audit', []) if row.get('user') == user]

    def get_logs_by_type(self, user: str, log_type: str) -> List[AuditLog]:
        """
        Filtra logs por tipo.

        Args:
            user: Cuenta dueña
            log_type: Tipo a filtrar (PEDIDO, STOCK, etc.)
        """
        return [log for log in self.load(user) if log.type == log_type]
