# ==============================================================================
# SERVICIO DE PRÉSTAMOS
# ==============================================================================
# Stock entregado a un socio fuera del canal de ventas.
# Al crear: foto de precio/puntos + descuento atómico de stock.
# Al eliminar: solo se borra el registro, el stock NO se repone.
# ==============================================================================

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, List, Optional

from app_ledger.errors import NotFoundError
from app_ledger.models import Loan, utcnow
from app_ledger.performance_logger import profile_function
from app_ledger.repositories.base import JsonStore
from app_ledger.repositories.contact_repository import PartnerRepository
from app_ledger.repositories.loan_repository import LoanRepository
from app_ledger.services.audit_service import AuditService
from app_ledger.services.catalog_service import CatalogService
from app_ledger.services.validation import optional_date, positive_int

logger = logging.getLogger(__name__)


class LoanService:
    """
    Servicio del libro de préstamos.
    """

    def __init__(
        self,
        store: JsonStore,
        loan_repo: LoanRepository,
        partner_repo: PartnerRepository,
        catalog_service: CatalogService,
        audit_service: Optional[AuditService] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.loan_repo = loan_repo
        self.partner_repo = partner_repo
        self.catalog_service = catalog_service
        self.audit_service = audit_service
        self.clock = clock

    @profile_function(name="Registrar préstamo")
    def create_loan(
        self,
        account_id: str,
        partner_id: str,
        product_id: str,
        quantity: Any,
        loan_date: Any = None
    ) -> Loan:
        """
        Registra un préstamo y descuenta el stock.

        Args:
            quantity: Unidades prestadas (>= 1)
            loan_date: Fecha del préstamo (YYYY-MM-DD); por defecto hoy

        Raises:
            ValidationError: Si quantity <= 0 o la fecha es inválida
            NotFoundError: Si el socio o el producto no existen en la cuenta
            InsufficientStockError: Si quantity supera el stock (nada cambia)
        """
        quantity = positive_int(quantity, 'quantity')
        when = optional_date(loan_date, 'loan_date') or self.clock().date()

        with self.store.transaction():
            partner = self.partner_repo.get(account_id, partner_id)
            if partner is None:
                raise NotFoundError('Socio', partner_id)
            product = self.catalog_service.get_product(account_id, product_id)

            loan = Loan(
                id=uuid.uuid4().hex,
                account_id=account_id,
                partner_id=partner_id,
                product_id=product_id,
                quantity=quantity,
                points_at_loan=product.points_per_unit,
                price_at_loan=product.price_per_unit,
                loan_date=when,
            )
            # Falla con InsufficientStockError antes de guardar el préstamo
            self.catalog_service.decrement_stock(account_id, product_id, quantity, f"préstamo {loan.id}")
            self.loan_repo.insert(loan)
            if self.audit_service:
                self.audit_service.log_loan_created(account_id, loan.id, partner.name, product.name, quantity)

        logger.info("Préstamo %s: %d x %s a %s", loan.id, quantity, product.name, partner.name)
        return loan

    def delete_loan(self, account_id: str, loan_id: str) -> Loan:
        """
        Elimina el registro del préstamo. No repone stock.

        Raises:
            NotFoundError: Si el préstamo no existe en la cuenta
        """
        with self.store.transaction():
            loan = self.loan_repo.delete(account_id, loan_id)
            if loan is None:
                raise NotFoundError('Préstamo', loan_id)
            if self.audit_service:
                self.audit_service.log_loan_deleted(account_id, loan_id, loan.quantity)
        return loan

    def get_loan(self, account_id: str, loan_id: str) -> Loan:
        loan = self.loan_repo.get(account_id, loan_id)
        if loan is None:
            raise NotFoundError('Préstamo', loan_id)
        return loan

    def list_loans(self, account_id: str, partner_id: Optional[str] = None) -> List[Loan]:
        """Préstamos por fecha descendente, opcionalmente de un socio."""
        return self.loan_repo.list_recent_first(account_id, partner_id)
