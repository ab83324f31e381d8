from datetime import date
from decimal import Decimal

import pytest

from app_ledger.errors import InsufficientStockError, NotFoundError, ValidationError

from conftest import ACCOUNT, OTHER_ACCOUNT


def test_loan_decrements_and_delete_does_not_restock(container, make_product, make_partner):
    product = make_product(quantity=10, price='8.00', points='2')
    partner = make_partner()

    loan = container.loan_service.create_loan(ACCOUNT, partner.id, product.id, 4)
    assert loan.loan_date == date(2026, 3, 15)
    assert loan.price_at_loan == Decimal('8.00')
    assert loan.points_at_loan == Decimal('2')
    assert container.catalog_service.get_product(ACCOUNT, product.id).quantity == 6

    container.loan_service.delete_loan(ACCOUNT, loan.id)
    assert container.catalog_service.get_product(ACCOUNT, product.id).quantity == 6
    with pytest.raises(NotFoundError):
        container.loan_service.get_loan(ACCOUNT, loan.id)


def test_loan_snapshot_survives_price_change(container, make_product, make_partner):
    product = make_product(quantity=10, price='8.00', points='2')
    partner = make_partner()
    loan = container.loan_service.create_loan(ACCOUNT, partner.id, product.id, 3)

    container.catalog_service.update_product(ACCOUNT, product.id, {'price_per_unit': '50.00', 'points_per_unit': '9'})

    stored = container.loan_service.get_loan(ACCOUNT, loan.id)
    assert stored.price_at_loan == Decimal('8.00')
    assert stored.points_at_loan == Decimal('2')

    totals = container.stats_service.partner_totals(ACCOUNT)[0]
    assert totals['quantity'] == 3
    assert totals['total_price'] == Decimal('24.00')
    assert totals['total_points'] == Decimal('6')


def test_loan_over_stock_changes_nothing(container, make_product, make_partner):
    product = make_product(quantity=3)
    with pytest.raises(InsufficientStockError):
        container.loan_service.create_loan(ACCOUNT, make_partner().id, product.id, 4)
    assert container.catalog_service.get_product(ACCOUNT, product.id).quantity == 3
    assert container.loan_service.list_loans(ACCOUNT) == []


@pytest.mark.parametrize('quantity', [0, -1, 'dos'])
def test_loan_requires_positive_quantity(container, make_product, make_partner, quantity):
    product = make_product(quantity=3)
    with pytest.raises(ValidationError):
        container.loan_service.create_loan(ACCOUNT, make_partner().id, product.id, quantity)


def test_loan_requires_known_partner_and_product(container, make_product, make_partner):
    product = make_product()
    partner = make_partner()
    with pytest.raises(NotFoundError):
        container.loan_service.create_loan(ACCOUNT, 'ghost', product.id, 1)
    with pytest.raises(NotFoundError):
        container.loan_service.create_loan(ACCOUNT, partner.id, 'ghost', 1)
    with pytest.raises(NotFoundError):
        container.loan_service.create_loan(OTHER_ACCOUNT, partner.id, product.id, 1)
    assert container.catalog_service.get_product(ACCOUNT, product.id).quantity == 10


def test_list_loans_recent_first(container, make_product, make_partner):
    product = make_product(quantity=10)
    marta = make_partner('Marta')
    olga = make_partner('Olga')
    older = container.loan_service.create_loan(ACCOUNT, marta.id, product.id, 1, '2026-01-05')
    newer = container.loan_service.create_loan(ACCOUNT, marta.id, product.id, 1, '2026-02-10')
    other = container.loan_service.create_loan(ACCOUNT, olga.id, product.id, 1, '2026-01-20')

    assert [l.id for l in container.loan_service.list_loans(ACCOUNT)] == [newer.id, other.id, older.id]
    assert [l.id for l in container.loan_service.list_loans(ACCOUNT, marta.id)] == [newer.id, older.id]


def test_invalid_loan_date(container, make_product, make_partner):
    with pytest.raises(ValidationError):
        container.loan_service.create_loan(ACCOUNT, make_partner().id, make_product().id, 1, '05/01/2026')
