# ==============================================================================
# ENTIDADES DEL DOMINIO - Definiciones de dataclasses
# ==============================================================================
# Cada entidad representa un concepto del negocio.
# Diseñadas para ser independientes del mecanismo de persistencia:
#   - Decimal se guarda como string ("10.00")
#   - date/datetime se guardan como ISO-8601
# Toda entidad lleva account_id: es el límite entre cuentas.
# ==============================================================================

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional


CENTS = Decimal('0.01')


# ==============================================================================
# ENUMERACIONES - Estados y tipos válidos
# ==============================================================================

class OrderStatus(str, Enum):
    """Estados posibles de un pedido."""
    PENDING = 'pending'        # Creado, esperando entrega
    DELIVERED = 'delivered'    # Entregado (terminal, descuenta stock)
    CANCELLED = 'cancelled'    # Anulado (terminal, sin efecto en stock)


TERMINAL_STATUSES = frozenset([OrderStatus.DELIVERED, OrderStatus.CANCELLED])


class AuditType(str, Enum):
    """Tipos de eventos de auditoría."""
    PRODUCTO = 'PRODUCTO'
    STOCK = 'STOCK'
    PEDIDO = 'PEDIDO'
    PAGO = 'PAGO'
    PRESTAMO = 'PRESTAMO'
    REGISTRO = 'REGISTRO'


# ==============================================================================
# CONVERSIONES (persistencia <-> dominio)
# ==============================================================================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == '':
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parsea una fecha/hora ISO. Sin zona horaria se asume UTC.
    Retorna None si no puede parsear.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except (ValueError, TypeError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dec_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


# ==============================================================================
# CATÁLOGO
# ==============================================================================

@dataclass
class Product:
    """
    Producto del catálogo.

    Attributes:
        id: Identificador único
        account_id: Cuenta dueña
        name: Nombre del producto
        quantity: Stock en mano (nunca negativo)
        price_per_unit: Precio por unidad
        points_per_unit: Puntos por unidad
    """
    id: str
    account_id: str
    name: str
    quantity: int = 0
    price_per_unit: Decimal = Decimal('0.00')
    points_per_unit: Decimal = Decimal('0')
    created_at: Optional[datetime] = None

    @property
    def stock_value(self) -> Decimal:
        """Valor del stock a precio actual."""
        return (self.price_per_unit * self.quantity).quantize(CENTS)

    @property
    def stock_points(self) -> Decimal:
        """Puntos del stock a valor actual."""
        return self.points_per_unit * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia JSON."""
        return {
            'id': self.id,
            'account_id': self.account_id,
            'name': self.name,
            'quantity': self.quantity,
            'price_per_unit': _dec_str(self.price_per_unit),
            'points_per_unit': _dec_str(self.points_per_unit),
            'created_at': _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Product':
        """Crea instancia desde diccionario."""
        return cls(
            id=data['id'],
            account_id=data['account_id'],
            name=data.get('name', ''),
            quantity=int(data.get('quantity', 0) or 0),
            price_per_unit=parse_decimal(data.get('price_per_unit')) or Decimal('0.00'),
            points_per_unit=parse_decimal(data.get('points_per_unit')) or Decimal('0'),
            created_at=parse_datetime(data.get('created_at')),
        )


# ==============================================================================
# REGISTROS DE RELACIÓN (clientes y socios)
# ==============================================================================

@dataclass
class Contact:
    """
    Datos comunes de clientes y socios.
    Son datos de referencia: sin ciclo de vida más allá de la pertenencia.
    """
    id: str
    account_id: str
    name: str
    phone: str = ''
    email: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'account_id': self.account_id,
            'name': self.name,
            'phone': self.phone,
            'email': self.email,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls(
            id=data['id'],
            account_id=data['account_id'],
            name=data.get('name', ''),
            phone=data.get('phone', '') or '',
            email=data.get('email', '') or '',
        )


@dataclass
class Customer(Contact):
    """Cliente: dueño de cero o más pedidos."""


@dataclass
class Partner(Contact):
    """Socio: dueño de cero o más préstamos."""


# ==============================================================================
# PEDIDOS
# ==============================================================================

@dataclass
class OrderLine:
    """
    Línea de pedido con la foto (snapshot) del precio y puntos del producto
    al momento de crear el pedido. Inmutable después de creada.

    Attributes:
        id: Identificador único
        order_id: Pedido dueño
        product_id: Producto referenciado (referencia débil)
        quantity: Cantidad pedida (>= 1)
        points_at_sale: Puntos por unidad al crear el pedido
        price_at_sale: Precio por unidad al crear el pedido
    """
    id: str
    account_id: str
    order_id: str
    product_id: str
    quantity: int
    points_at_sale: Optional[Decimal] = None
    price_at_sale: Optional[Decimal] = None

    @property
    def line_total(self) -> Decimal:
        return ((self.price_at_sale or Decimal('0')) * self.quantity).quantize(CENTS)

    @property
    def line_points(self) -> Decimal:
        return (self.points_at_sale or Decimal('0')) * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'account_id': self.account_id,
            'order_id': self.order_id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'points_at_sale': _dec_str(self.points_at_sale),
            'price_at_sale': _dec_str(self.price_at_sale),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrderLine':
        return cls(
            id=data['id'],
            account_id=data['account_id'],
            order_id=data['order_id'],
            product_id=data.get('product_id', ''),
            quantity=int(data.get('quantity', 0) or 0),
            points_at_sale=parse_decimal(data.get('points_at_sale')),
            price_at_sale=parse_decimal(data.get('price_at_sale')),
        )


@dataclass
class Order:
    """
    Pedido de un cliente.

    Los totales se calculan una sola vez al crear el pedido y se persisten.
    Pueden faltar en datos antiguos (None): en ese caso los reportes los
    recalculan desde las líneas.

    Attributes:
        id: Identificador único
        customer_id: Cliente dueño
        delivery_date: Fecha de entrega comprometida
        status: pending | delivered | cancelled
        is_paid: Marca de pago
        total_points: Suma de quantity * points_at_sale
        total_price: Suma de quantity * price_at_sale
        completed_at: Momento de entrega (solo si delivered)
        created_at: Momento de creación
        lines: Líneas del pedido (se cargan junto al pedido)
    """
    id: str
    account_id: str
    customer_id: str
    delivery_date: Optional[date] = None
    status: OrderStatus = OrderStatus.PENDING
    is_paid: bool = False
    total_points: Optional[Decimal] = None
    total_price: Optional[Decimal] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    lines: List[OrderLine] = field(default_factory=list)

    def calculate_totals(self) -> None:
        """Recalcula totales desde las líneas (solo al crear)."""
        self.total_price = sum((line.line_total for line in self.lines), Decimal('0.00')).quantize(CENTS)
        self.total_points = sum((line.line_points for line in self.lines), Decimal('0'))

    def to_dict(self, include_lines: bool = True) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia JSON (sin líneas) o proyección (con líneas)."""
        d = {
            'id': self.id,
            'account_id': self.account_id,
            'customer_id': self.customer_id,
            'delivery_date': _iso(self.delivery_date),
            'status': self.status.value,
            'is_paid': self.is_paid,
            'total_points': _dec_str(self.total_points),
            'total_price': _dec_str(self.total_price),
            'completed_at': _iso(self.completed_at),
            'created_at': _iso(self.created_at),
        }
        if include_lines:
            d['lines'] = [line.to_dict() for line in self.lines]
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Order':
        try:
            status = OrderStatus(data.get('status', 'pending'))
        except ValueError:
            status = OrderStatus.PENDING
        return cls(
            id=data['id'],
            account_id=data['account_id'],
            customer_id=data.get('customer_id', ''),
            delivery_date=parse_date(data.get('delivery_date')),
            status=status,
            is_paid=bool(data.get('is_paid', False)),
            total_points=parse_decimal(data.get('total_points')),
            total_price=parse_decimal(data.get('total_price')),
            completed_at=parse_datetime(data.get('completed_at')),
            created_at=parse_datetime(data.get('created_at')),
            lines=[OrderLine.from_dict(line) for line in data.get('lines', [])],
        )


# ==============================================================================
# PRÉSTAMOS
# ==============================================================================

@dataclass
class Loan:
    """
    Stock entregado a un socio fuera del canal de ventas.
    Guarda la foto del precio/puntos igual que OrderLine.
    """
    id: str
    account_id: str
    partner_id: str
    product_id: str
    quantity: int
    points_at_loan: Optional[Decimal] = None
    price_at_loan: Optional[Decimal] = None
    loan_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'account_id': self.account_id,
            'partner_id': self.partner_id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'points_at_loan': _dec_str(self.points_at_loan),
            'price_at_loan': _dec_str(self.price_at_loan),
            'loan_date': _iso(self.loan_date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            account_id=data['account_id'],
            partner_id=data.get('partner_id', ''),
            product_id=data.get('product_id', ''),
            quantity=int(data.get('quantity', 0) or 0),
            points_at_loan=parse_decimal(data.get('points_at_loan')),
            price_at_loan=parse_decimal(data.get('price_at_loan')),
            loan_date=parse_date(data.get('loan_date')),
        )


# ==============================================================================
# ENTIDADES DE AUDITORÍA
# ==============================================================================

@dataclass
class AuditLog:
    """
    Registro de auditoría.

    Attributes:
        type: Tipo de evento (PRODUCTO, PEDIDO, STOCK, etc.)
        user: Cuenta que realizó la acción
        message: Mensaje descriptivo humanizado
        timestamp: Fecha y hora del evento
        related_id: ID relacionado (pedido, producto, préstamo)
        details: Detalles adicionales
    """
    type: str
    user: str
    message: str
    timestamp: str = ''
    related_id: str = ''
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = utcnow().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        return {
            'type': self.type,
            'user': self.user,
            'message': self.message,
            'timestamp': self.timestamp,
            'related_id': self.related_id,
            'details': self.details
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditLog':
        """Crea instancia desde diccionario."""
        return cls(
            type=data.get('type', ''),
            user=data.get('user', ''),
            message=data.get('message', ''),
            timestamp=data.get('timestamp', ''),
            related_id=data.get('related_id', ''),
            details=data.get('details', {})
        )
