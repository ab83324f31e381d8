# ==============================================================================
# REPOSITORIOS DE CLIENTES Y SOCIOS
# ==============================================================================
# Tablas "customers" y "partners" de ledger.json.
# Ambas guardan {id: {id, account_id, name, phone, email}}
# ==============================================================================

from typing import List

from app_ledger.models import Customer, Partner
from app_ledger.repositories.base import TableRepository


class ContactRepository(TableRepository):
    """Base común: listado ordenado por nombre."""

    def list_by_name(self, account_id: str) -> List:
        return sorted(self.list(account_id), key=lambda c: (c.name.lower(), c.id))


class CustomerRepository(ContactRepository):
    table = 'customers'
    entity_cls = Customer


class PartnerRepository(ContactRepository):
    table = 'partners'
    entity_cls = Partner
