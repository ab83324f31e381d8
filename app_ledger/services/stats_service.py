# ==============================================================================
# SERVICIO DE ESTADÍSTICAS
# ==============================================================================
# Agregaciones sobre pedidos, préstamos e inventario.
#
# REGLAS PRINCIPALES:
# - Ventas = solo pedidos "delivered", fechados por completed_at
# - Ventanas de tiempo semiabiertas: [inicio, fin)
# - Un producto inexistente aporta cero, nunca lanza error
#
# Las funciones de módulo son plegados puros sobre datos ya cargados;
# StatsService solo carga los datos de la cuenta y las invoca.
# ==============================================================================

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from app_ledger.errors import ValidationError
from app_ledger.models import CENTS, Loan, Order, OrderLine, OrderStatus, Product, utcnow
from app_ledger.performance_logger import profile_function
from app_ledger.repositories.interfaces import ILoanRepository, IOrderRepository, IProductRepository, ITableRepository


ZERO = Decimal('0')
MONTH_ABBR = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')

ProductIndex = Mapping[str, Product]


# ==============================================================================
# CADENA DE RESPALDO (snapshot → producto actual → cero)
# ==============================================================================
# Única definición de cómo se valora una línea o préstamo cuando falta su
# foto de precio/puntos. La usan todos los totales y reportes.

def _resolve(snapshot: Optional[Decimal], product: Optional[Product], attr: str) -> Decimal:
    if snapshot is not None:
        return snapshot
    if product is not None:
        return getattr(product, attr)
    return ZERO


def resolve_line_price(line: OrderLine, products: ProductIndex) -> Decimal:
    """Precio unitario de una línea: price_at_sale, si falta el precio actual, si no 0."""
    return _resolve(line.price_at_sale, products.get(line.product_id), 'price_per_unit')


def resolve_line_points(line: OrderLine, products: ProductIndex) -> Decimal:
    """Puntos unitarios de una línea: points_at_sale, si falta los actuales, si no 0."""
    return _resolve(line.points_at_sale, products.get(line.product_id), 'points_per_unit')


def resolve_loan_price(loan: Loan, products: ProductIndex) -> Decimal:
    return _resolve(loan.price_at_loan, products.get(loan.product_id), 'price_per_unit')


def resolve_loan_points(loan: Loan, products: ProductIndex) -> Decimal:
    return _resolve(loan.points_at_loan, products.get(loan.product_id), 'points_per_unit')


def order_total_price(order: Order, products: ProductIndex) -> Decimal:
    """total_price persistido; si falta, se recalcula desde las líneas."""
    if order.total_price is not None:
        return order.total_price
    total = sum((resolve_line_price(line, products) * line.quantity for line in order.lines), ZERO)
    return total.quantize(CENTS)


def order_total_points(order: Order, products: ProductIndex) -> Decimal:
    if order.total_points is not None:
        return order.total_points
    return sum((resolve_line_points(line, products) * line.quantity for line in order.lines), ZERO)


# ==============================================================================
# PLEGADOS PUROS
# ==============================================================================

def _empty_totals() -> Dict[str, Any]:
    return {'count': 0, 'total_price': ZERO.quantize(CENTS), 'total_points': ZERO}


def _sum_orders(orders: Iterable[Order], products: ProductIndex) -> Dict[str, Any]:
    totals = _empty_totals()
    for order in orders:
        totals['count'] += 1
        totals['total_price'] += order_total_price(order, products)
        totals['total_points'] += order_total_points(order, products)
    totals['total_price'] = totals['total_price'].quantize(CENTS)
    return totals


def pending_totals(orders: Iterable[Order], products: Optional[ProductIndex] = None) -> Dict[str, Any]:
    """Σ totales de los pedidos pendientes."""
    return _sum_orders((o for o in orders if o.status == OrderStatus.PENDING), products or {})


def delivered_in_window(
    orders: Iterable[Order],
    start: datetime,
    end: datetime,
    products: Optional[ProductIndex] = None
) -> Dict[str, Any]:
    """
    Σ totales de pedidos entregados con start <= completed_at < end.

    Args:
        start: Inicio de la ventana (incluido)
        end: Fin de la ventana (excluido)
    """
    selected = (
        o for o in orders
        if o.status == OrderStatus.DELIVERED
        and o.completed_at is not None
        and start <= o.completed_at < end
    )
    return _sum_orders(selected, products or {})


def parse_month(value: str, field: str = 'month') -> Tuple[int, int]:
    """
    Parsea 'YYYY-MM'.

    Raises:
        ValidationError: Si el formato no es válido
    """
    try:
        year_text, month_text = str(value).split('-')
        year, month = int(year_text), int(month_text)
    except (TypeError, ValueError):
        raise ValidationError(f"El campo '{field}' debe tener formato YYYY-MM", field=field)
    if not 1 <= month <= 12 or len(year_text) != 4:
        raise ValidationError(f"El campo '{field}' debe tener formato YYYY-MM", field=field)
    return year, month


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def month_label(year: int, month: int) -> str:
    """Etiqueta corta: 'Jan 2026'."""
    return f"{MONTH_ABBR[month - 1]} {year}"


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _month_bucket() -> Dict[str, Any]:
    return {'orders': 0, 'total_price': ZERO.quantize(CENTS), 'total_points': ZERO}


def _group_delivered_by_month(orders: Iterable[Order], products: ProductIndex) -> Dict[str, Dict[str, Any]]:
    grouped: Dict[str, Dict[str, Any]] = defaultdict(_month_bucket)
    for order in orders:
        if order.status != OrderStatus.DELIVERED or order.completed_at is None:
            continue
        bucket = grouped[month_key(order.completed_at.year, order.completed_at.month)]
        bucket['orders'] += 1
        bucket['total_price'] += order_total_price(order, products)
        bucket['total_points'] += order_total_points(order, products)
    return grouped


def _month_row(key: str, bucket: Dict[str, Any]) -> Dict[str, Any]:
    year, month = parse_month(key)
    return {
        'month': key,
        'label': month_label(year, month),
        'orders': bucket['orders'],
        'total_price': bucket['total_price'].quantize(CENTS),
        'total_points': bucket['total_points'],
    }


def monthly_sales(
    orders: Iterable[Order],
    products: Optional[ProductIndex] = None,
    start_month: Optional[str] = None,
    end_month: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Serie mensual de ventas entregadas, agrupadas por mes de completed_at.
    Solo incluye meses con ventas, en orden cronológico.

    Args:
        start_month: 'YYYY-MM' inicial (incluido)
        end_month: 'YYYY-MM' final (incluido)
    """
    if start_month:
        start_month = month_key(*parse_month(start_month, 'start_month'))
    if end_month:
        end_month = month_key(*parse_month(end_month, 'end_month'))
    if start_month and end_month and start_month > end_month:
        raise ValidationError("start_month no puede ser posterior a end_month", field='start_month')

    grouped = _group_delivered_by_month(orders, products or {})
    rows = []
    for key in sorted(grouped):
        if start_month and key < start_month:
            continue
        if end_month and key > end_month:
            continue
        rows.append(_month_row(key, grouped[key]))
    return rows


def trailing_months_series(
    orders: Iterable[Order],
    now: datetime,
    months: int = 12,
    products: Optional[ProductIndex] = None
) -> List[Dict[str, Any]]:
    """
    Últimos N meses (incluido el actual) con ceros en meses sin ventas.
    """
    grouped = _group_delivered_by_month(orders, products or {})
    rows = []
    for offset in range(months - 1, -1, -1):
        year, month = shift_month(now.year, now.month, -offset)
        key = month_key(year, month)
        rows.append(_month_row(key, grouped.get(key) or _month_bucket()))
    return rows


def partner_loan_totals(loans: Iterable[Loan], products: Optional[ProductIndex] = None) -> Dict[str, Dict[str, Any]]:
    """
    Agrupa préstamos por socio.

    Returns:
        {partner_id: {'loans', 'quantity', 'total_price', 'total_points'}}
    """
    products = products or {}
    totals: Dict[str, Dict[str, Any]] = defaultdict(
        lambda: {'loans': 0, 'quantity': 0, 'total_price': ZERO.quantize(CENTS), 'total_points': ZERO}
    )
    for loan in loans:
        entry = totals[loan.partner_id]
        entry['loans'] += 1
        entry['quantity'] += loan.quantity
        entry['total_price'] = (entry['total_price'] + resolve_loan_price(loan, products) * loan.quantity).quantize(CENTS)
        entry['total_points'] += resolve_loan_points(loan, products) * loan.quantity
    return dict(totals)


def customer_order_totals(orders: Iterable[Order], products: Optional[ProductIndex] = None) -> Dict[str, Dict[str, Any]]:
    """
    Agrupa pedidos de cualquier estado por cliente.

    Returns:
        {customer_id: {'count', 'total_price', 'total_points'}}
    """
    by_customer: Dict[str, List[Order]] = defaultdict(list)
    for order in orders:
        by_customer[order.customer_id].append(order)
    return {cid: _sum_orders(group, products or {}) for cid, group in by_customer.items()}


def inventory_totals(products: Iterable[Product]) -> Dict[str, Any]:
    """Σ quantity × precio y Σ quantity × puntos sobre el catálogo."""
    summary = {'products': 0, 'units': 0, 'total_value': ZERO.quantize(CENTS), 'total_points': ZERO}
    for product in products:
        summary['products'] += 1
        summary['units'] += product.quantity
        summary['total_value'] += product.stock_value
        summary['total_points'] += product.stock_points
    return summary


# ==============================================================================
# SERVICIO
# ==============================================================================

class StatsService:
    """
    Servicio de estadísticas por cuenta.

    Responsabilidades:
    - Panel: pendientes y entregados en la ventana reciente
    - Series mensuales (ventas y puntos)
    - Totales por socio, por cliente e inventario
    """

    def __init__(
        self,
        product_repo: IProductRepository,
        order_repo: IOrderRepository,
        loan_repo: ILoanRepository,
        customer_repo: ITableRepository,
        partner_repo: ITableRepository,
        clock: Callable[[], datetime] = utcnow,
        dashboard_window_days: int = 60
    ):
        """
        Args:
            clock: Función que retorna el instante actual (UTC)
            dashboard_window_days: Días de la ventana de entregados del panel
        """
        self.product_repo = product_repo
        self.order_repo = order_repo
        self.loan_repo = loan_repo
        self.customer_repo = customer_repo
        self.partner_repo = partner_repo
        self.clock = clock
        self.dashboard_window_days = dashboard_window_days

    def _products(self, account_id: str) -> Dict[str, Product]:
        return {p.id: p for p in self.product_repo.list(account_id)}

    def _orders(self, account_id: str) -> List[Order]:
        return self.order_repo.list_with_lines(account_id)

    @profile_function(name="Calcular panel")
    def dashboard(self, account_id: str) -> Dict[str, Any]:
        """
        Resumen del panel principal.

        Returns:
            {'pending', 'delivered', 'window_days', 'window_start', 'inventory'}
        """
        now = self.clock()
        start = now - timedelta(days=self.dashboard_window_days)
        products = self._products(account_id)
        orders = self._orders(account_id)
        return {
            'pending': pending_totals(orders, products),
            'delivered': delivered_in_window(orders, start, now, products),
            'window_days': self.dashboard_window_days,
            'window_start': start.isoformat(),
            'inventory': inventory_totals(products.values()),
        }

    def delivered_totals(self, account_id: str, start: datetime, end: Optional[datetime] = None) -> Dict[str, Any]:
        """Totales entregados en [start, end); end por defecto es ahora."""
        end = end or self.clock()
        if start > end:
            raise ValidationError("El inicio del rango no puede ser posterior al fin", field='start')
        return delivered_in_window(self._orders(account_id), start, end, self._products(account_id))

    def monthly_sales(
        self,
        account_id: str,
        start_month: Optional[str] = None,
        end_month: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return monthly_sales(self._orders(account_id), self._products(account_id), start_month, end_month)

    def sales_series(self, account_id: str, months: int = 12) -> List[Dict[str, Any]]:
        """Serie de los últimos N meses con meses vacíos en cero."""
        if months < 1:
            raise ValidationError("months debe ser mayor que 0", field='months')
        return trailing_months_series(self._orders(account_id), self.clock(), months, self._products(account_id))

    def partner_totals(self, account_id: str) -> List[Dict[str, Any]]:
        """Totales de préstamos por socio, con el nombre del socio, ordenados por nombre."""
        totals = partner_loan_totals(self.loan_repo.list(account_id), self._products(account_id))
        rows = []
        for partner in self.partner_repo.list_by_name(account_id):
            entry = totals.get(partner.id) or {
                'loans': 0, 'quantity': 0, 'total_price': ZERO.quantize(CENTS), 'total_points': ZERO
            }
            rows.append({'partner_id': partner.id, 'partner_name': partner.name, **entry})
        return rows

    def customer_totals(self, account_id: str) -> List[Dict[str, Any]]:
        """Totales de pedidos por cliente, ordenados por nombre."""
        totals = customer_order_totals(self._orders(account_id), self._products(account_id))
        rows = []
        for customer in self.customer_repo.list_by_name(account_id):
            entry = totals.get(customer.id) or _empty_totals()
            rows.append({'customer_id': customer.id, 'customer_name': customer.name, **entry})
        return rows

    def inventory_valuation(self, account_id: str) -> Dict[str, Any]:
        return inventory_totals(self.product_repo.list(account_id))
