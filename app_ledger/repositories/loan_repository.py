# ==============================================================================
# REPOSITORIO DE PRÉSTAMOS
# ==============================================================================
# Encapsula el acceso a la tabla "loans" de ledger.json
# ==============================================================================

from typing import List, Optional

from app_ledger.models import Loan
from app_ledger.repositories.base import TableRepository


class LoanRepository(TableRepository):
    """
    Repositorio de préstamos a socios.

    Formato de datos en ledger.json:
    "loans": {
        "e5d2...": {
            "id": "e5d2...",
            "account_id": "acct-1",
            "partner_id": "p9c1...",
            "product_id": "9f1c...",
            "quantity": 4,
            "points_at_loan": "3",
            "price_at_loan": "10.00",
            "loan_date": "2026-01-15"
        }
    }
    """

    table = 'loans'
    entity_cls = Loan

    def list_recent_first(self, account_id: str, partner_id: Optional[str] = None) -> List[Loan]:
        """
        Préstamos ordenados por fecha descendente.

        Args:
            partner_id: Si se indica, solo los de ese socio
        """
        if partner_id is None:
            loans = self.list(account_id)
        else:
            loans = self.find_all_by(account_id, 'partner_id', partner_id)
        return sorted(loans, key=lambda l: (l.loan_date.isoformat() if l.loan_date else '', l.id), reverse=True)
