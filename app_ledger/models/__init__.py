# ==============================================================================
# CAPA DE MODELOS - Estructuras de datos del sistema
# ==============================================================================
# Este módulo define todas las entidades del dominio usando dataclasses.
# Beneficios:
#   - Type hints para mejor documentación y autocompletado
#   - Fácil serialización/deserialización para JSON
#   - Independiente del mecanismo de persistencia
# ==============================================================================

from .entities import (
    # Catálogo
    Product,

    # Registros
    Contact,
    Customer,
    Partner,

    # Pedidos
    Order,
    OrderLine,
    OrderStatus,
    TERMINAL_STATUSES,

    # Préstamos
    Loan,

    # Auditoría
    AuditLog,
    AuditType,

    # Conversiones
    CENTS,
    parse_date,
    parse_datetime,
    parse_decimal,
    utcnow,
)

__all__ = [
    'Product',
    'Contact',
    'Customer',
    'Partner',
    'Order',
    'OrderLine',
    'OrderStatus',
    'TERMINAL_STATUSES',
    'Loan',
    'AuditLog',
    'AuditType',
    'CENTS',
    'parse_date',
    'parse_datetime',
    'parse_decimal',
    'utcnow',
]
