# ==============================================================================
# SERVICIO DE REGISTROS (clientes y socios)
# ==============================================================================
# CRUD de los datos de referencia. La eliminación arrastra a los dependientes:
#   cliente → pedidos → líneas
#   socio   → préstamos
# y ocurre en una sola transacción: se elimina todo o nada.
# ==============================================================================

import logging
import uuid
from typing import Any, Dict, List, Optional

from app_ledger.errors import NotFoundError
from app_ledger.models import Customer, Partner
from app_ledger.repositories.base import JsonStore
from app_ledger.repositories.contact_repository import ContactRepository, CustomerRepository, PartnerRepository
from app_ledger.repositories.loan_repository import LoanRepository
from app_ledger.repositories.order_repository import OrderRepository
from app_ledger.services.audit_service import AuditService
from app_ledger.services.validation import optional_text, require_text

logger = logging.getLogger(__name__)


class RegistryService:
    """
    Servicio de clientes y socios.

    Los nombres de entidad ('Cliente', 'Socio') se usan en los mensajes
    de error y de auditoría.
    """

    CONTACT_FIELDS = ('name', 'phone', 'email')

    def __init__(
        self,
        store: JsonStore,
        customer_repo: CustomerRepository,
        partner_repo: PartnerRepository,
        order_repo: OrderRepository,
        loan_repo: LoanRepository,
        audit_service: Optional[AuditService] = None
    ):
        self.store = store
        self.customer_repo = customer_repo
        self.partner_repo = partner_repo
        self.order_repo = order_repo
        self.loan_repo = loan_repo
        self.audit_service = audit_service

    # =========================================================================
    # OPERACIONES GENÉRICAS
    # =========================================================================

    def _clean(self, attrs: Dict[str, Any], partial: bool) -> Dict[str, str]:
        cleaned = {}
        if not partial or 'name' in attrs:
            cleaned['name'] = require_text(attrs, 'name')
        for field in ('phone', 'email'):
            if not partial or field in attrs:
                cleaned[field] = optional_text(attrs, field)
        return cleaned

    def _get(self, repo: ContactRepository, entity: str, account_id: str, contact_id: str):
        contact = repo.get(account_id, contact_id)
        if contact is None:
            raise NotFoundError(entity, contact_id)
        return contact

    def _create(self, repo: ContactRepository, entity: str, account_id: str, attrs: Dict[str, Any]):
        contact = repo.entity_cls(id=uuid.uuid4().hex, account_id=account_id, **self._clean(attrs, partial=False))
        with self.store.transaction():
            repo.insert(contact)
            if self.audit_service:
                self.audit_service.log_contact_saved(account_id, entity.lower(), contact.id, contact.name, True)
        return contact

    def _update(self, repo: ContactRepository, entity: str, account_id: str, contact_id: str, attrs: Dict[str, Any]):
        cleaned = self._clean({k: v for k, v in attrs.items() if k in self.CONTACT_FIELDS}, partial=True)
        with self.store.transaction():
            self._get(repo, entity, account_id, contact_id)
            contact = repo.update(account_id, contact_id, cleaned)
            if self.audit_service:
                self.audit_service.log_contact_saved(account_id, entity.lower(), contact_id, contact.name, False)
        return contact

    # =========================================================================
    # CLIENTES
    # =========================================================================

    def create_customer(self, account_id: str, attrs: Dict[str, Any]) -> Customer:
        """
        Crea un cliente.

        Raises:
            ValidationError: Si falta el nombre
        """
        return self._create(self.customer_repo, 'Cliente', account_id, attrs)

    def update_customer(self, account_id: str, customer_id: str, attrs: Dict[str, Any]) -> Customer:
        return self._update(self.customer_repo, 'Cliente', account_id, customer_id, attrs)

    def get_customer(self, account_id: str, customer_id: str) -> Customer:
        return self._get(self.customer_repo, 'Cliente', account_id, customer_id)

    def list_customers(self, account_id: str) -> List[Customer]:
        return self.customer_repo.list_by_name(account_id)

    def delete_customer(self, account_id: str, customer_id: str) -> int:
        """
        Elimina un cliente junto con sus pedidos y las líneas de esos pedidos.
        La confirmación del usuario es responsabilidad de quien llama.

        Returns:
            Cantidad de pedidos eliminados en cascada

        Raises:
            NotFoundError: Si el cliente no existe en la cuenta
        """
        with self.store.transaction():
            customer = self.get_customer(account_id, customer_id)
            removed_orders = self.order_repo.delete_for_customer(account_id, customer_id)
            self.customer_repo.delete(account_id, customer_id)
            if self.audit_service:
                self.audit_service.log_contact_deleted(account_id, 'cliente', customer_id, customer.name, removed_orders)
        logger.info("Cliente %s eliminado con %d pedidos", customer_id, removed_orders)
        return removed_orders

    # =========================================================================
    # SOCIOS
    # =========================================================================

    def create_partner(self, account_id: str, attrs: Dict[str, Any]) -> Partner:
        return self._create(self.partner_repo, 'Socio', account_id, attrs)

    def update_partner(self, account_id: str, partner_id: str, attrs: Dict[str, Any]) -> Partner:
        return self._update(self.partner_repo, 'Socio', account_id, partner_id, attrs)

    def get_partner(self, account_id: str, partner_id: str) -> Partner:
        return self._get(self.partner_repo, 'Socio', account_id, partner_id)

    def list_partners(self, account_id: str) -> List[Partner]:
        return self.partner_repo.list_by_name(account_id)

    def delete_partner(self, account_id: str, partner_id: str) -> int:
        """
        Elimina un socio junto con sus préstamos (sin reponer stock).

        Returns:
            Cantidad de préstamos eliminados en cascada
        """
        with self.store.transaction():
            partner = self.get_partner(account_id, partner_id)
            removed_loans = self.loan_repo.delete_where(account_id, 'partner_id', partner_id)
            self.partner_repo.delete(account_id, partner_id)
            if self.audit_service:
                self.audit_service.log_contact_deleted(account_id, 'socio', partner_id, partner.name, removed_loans)
        logger.info("Socio %s eliminado con %d préstamos", partner_id, removed_loans)
        return removed_loans
