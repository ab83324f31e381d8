# ==============================================================================
# SERVICIO DE REPORTES
# ==============================================================================
# Filas planas para exportación: inventario, préstamos y ventas mensuales.
# El formato final (PDF, CSV, pantalla) lo decide quien consume las filas.
# ==============================================================================

from typing import Any, Dict, List, Optional

from app_ledger.errors import ValidationError
from app_ledger.models import CENTS
from app_ledger.performance_logger import profile_function
from app_ledger.repositories.interfaces import ILoanRepository, IOrderRepository, IProductRepository, ITableRepository
from app_ledger.services.stats_service import monthly_sales, resolve_loan_points, resolve_loan_price


REPORT_TYPES = ('inventory', 'loans', 'monthly_sales')

UNKNOWN_NAME = 'N/A'


class ReportService:
    """
    Genera las filas de cada tipo de reporte para una cuenta.
    """

    def __init__(
        self,
        product_repo: IProductRepository,
        order_repo: IOrderRepository,
        loan_repo: ILoanRepository,
        partner_repo: ITableRepository
    ):
        self.product_repo = product_repo
        self.order_repo = order_repo
        self.loan_repo = loan_repo
        self.partner_repo = partner_repo

    def inventory_rows(self, account_id: str) -> List[Dict[str, Any]]:
        """Inventario actual ordenado por nombre, con su valorización."""
        return [
            {
                'product_id': p.id,
                'name': p.name,
                'quantity': p.quantity,
                'points_per_unit': p.points_per_unit,
                'price_per_unit': p.price_per_unit,
                'stock_points': p.stock_points,
                'stock_value': p.stock_value,
            }
            for p in self.product_repo.list_by_name(account_id)
        ]

    def loan_rows(self, account_id: str) -> List[Dict[str, Any]]:
        """
        Préstamos por fecha descendente con nombres de socio y producto.
        Un socio o producto inexistente se muestra como 'N/A' y valora cero.
        """
        products = {p.id: p for p in self.product_repo.list(account_id)}
        partners = {p.id: p for p in self.partner_repo.list(account_id)}
        rows = []
        for loan in self.loan_repo.list_recent_first(account_id):
            product = products.get(loan.product_id)
            partner = partners.get(loan.partner_id)
            rows.append({
                'loan_id': loan.id,
                'loan_date': loan.loan_date.isoformat() if loan.loan_date else None,
                'partner_id': loan.partner_id,
                'partner_name': partner.name if partner else UNKNOWN_NAME,
                'product_id': loan.product_id,
                'product_name': product.name if product else UNKNOWN_NAME,
                'quantity': loan.quantity,
                'total_points': resolve_loan_points(loan, products) * loan.quantity,
                'total_price': (resolve_loan_price(loan, products) * loan.quantity).quantize(CENTS),
            })
        return rows

    def monthly_sales_rows(
        self,
        account_id: str,
        start_month: Optional[str] = None,
        end_month: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Ventas entregadas por mes dentro del rango YYYY-MM..YYYY-MM (inclusivo).

        Raises:
            ValidationError: Si algún mes tiene formato inválido o el rango está invertido
        """
        products = {p.id: p for p in self.product_repo.list(account_id)}
        orders = self.order_repo.list_with_lines(account_id)
        return monthly_sales(orders, products, start_month, end_month)

    @profile_function(name="Generar reporte")
    def build(self, account_id: str, report_type: str, **params: Any) -> List[Dict[str, Any]]:
        """
        Despacha por tipo de reporte.

        Args:
            report_type: 'inventory', 'loans' o 'monthly_sales'
            params: start_month / end_month para monthly_sales
        """
        if report_type not in REPORT_TYPES:
            raise ValidationError(
                f"Tipo de reporte desconocido: {report_type} (válidos: {', '.join(REPORT_TYPES)})",
                field='report_type'
            )
        if report_type == 'inventory':
            return self.inventory_rows(account_id)
        if report_type == 'loans':
            return self.loan_rows(account_id)
        return self.monthly_sales_rows(account_id, params.get('start_month'), params.get('end_month'))
