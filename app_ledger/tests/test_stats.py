# -*- coding: utf-8 -*-
"""
Tests de agregaciones: panel, series mensuales y totales
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app_ledger.errors import ValidationError
from app_ledger.models import Loan, Order, OrderLine, OrderStatus, Product
from app_ledger.services.stats_service import (
    delivered_in_window,
    monthly_sales,
    order_total_price,
    partner_loan_totals,
    resolve_line_price,
    resolve_line_points,
    trailing_months_series,
)

from conftest import ACCOUNT


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _delivered(order_id, completed_at, total_price, total_points='0'):
    return Order(
        id=order_id, account_id=ACCOUNT, customer_id='c1', status=OrderStatus.DELIVERED,
        total_price=Decimal(total_price), total_points=Decimal(total_points), completed_at=completed_at,
    )


# ==============================================================================
# CADENA DE RESPALDO
# ==============================================================================

def test_line_value_falls_back_to_current_product_then_zero():
    product = Product(id='p1', account_id=ACCOUNT, name='Crema',
                      price_per_unit=Decimal('7.00'), points_per_unit=Decimal('2'))
    snapshot = OrderLine(id='l1', account_id=ACCOUNT, order_id='o1', product_id='p1', quantity=1,
                         points_at_sale=Decimal('3'), price_at_sale=Decimal('10.00'))
    legacy = OrderLine(id='l2', account_id=ACCOUNT, order_id='o1', product_id='p1', quantity=1)
    orphan = OrderLine(id='l3', account_id=ACCOUNT, order_id='o1', product_id='gone', quantity=1)
    products = {'p1': product}

    assert resolve_line_price(snapshot, products) == Decimal('10.00')
    assert resolve_line_price(legacy, products) == Decimal('7.00')
    assert resolve_line_price(orphan, products) == Decimal('0')
    assert resolve_line_points(legacy, products) == Decimal('2')
    assert resolve_line_points(orphan, products) == Decimal('0')


def test_missing_order_total_is_recomputed_from_lines():
    product = Product(id='p1', account_id=ACCOUNT, name='Crema', price_per_unit=Decimal('5.00'))
    order = Order(id='o1', account_id=ACCOUNT, customer_id='c1', lines=[
        OrderLine(id='l1', account_id=ACCOUNT, order_id='o1', product_id='p1', quantity=2),
        OrderLine(id='l2', account_id=ACCOUNT, order_id='o1', product_id='p1', quantity=1,
                  price_at_sale=Decimal('1.50')),
        OrderLine(id='l3', account_id=ACCOUNT, order_id='o1', product_id='gone', quantity=4),
    ])
    assert order_total_price(order, {'p1': product}) == Decimal('11.50')


def test_partner_totals_use_snapshot_when_present():
    product = Product(id='p1', account_id=ACCOUNT, name='Crema',
                      price_per_unit=Decimal('99.00'), points_per_unit=Decimal('9'))
    loans = [
        Loan(id='a', account_id=ACCOUNT, partner_id='m', product_id='p1', quantity=2,
             points_at_loan=Decimal('3'), price_at_loan=Decimal('10.00')),
        Loan(id='b', account_id=ACCOUNT, partner_id='m', product_id='p1', quantity=1),
        Loan(id='c', account_id=ACCOUNT, partner_id='o', product_id='gone', quantity=5),
    ]
    totals = partner_loan_totals(loans, {'p1': product})
    assert totals['m'] == {'loans': 2, 'quantity': 3, 'total_price': Decimal('119.00'), 'total_points': Decimal('15')}
    assert totals['o']['total_price'] == Decimal('0.00')


# ==============================================================================
# VENTANAS Y SERIES
# ==============================================================================

def test_delivered_window_is_half_open():
    start, end = _utc(2026, 1, 1), _utc(2026, 2, 1)
    orders = [
        _delivered('at-start', start, '10.00'),
        _delivered('inside', _utc(2026, 1, 31, 23, 59), '5.00'),
        _delivered('at-end', end, '100.00'),
        Order(id='pending', account_id=ACCOUNT, customer_id='c1', total_price=Decimal('7.00'),
              total_points=Decimal('0')),
    ]
    totals = delivered_in_window(orders, start, end)
    assert totals['count'] == 2
    assert totals['total_price'] == Decimal('15.00')


def test_monthly_sales_groups_by_completion_month():
    orders = [
        _delivered('a', _utc(2026, 1, 3), '10.00', '3'),
        _delivered('b', _utc(2026, 1, 28), '5.50', '1'),
        _delivered('c', _utc(2026, 3, 2), '20.00', '6'),
        Order(id='x', account_id=ACCOUNT, customer_id='c1', status=OrderStatus.CANCELLED,
              total_price=Decimal('50.00'), completed_at=None),
    ]
    rows = monthly_sales(orders)
    assert [r['month'] for r in rows] == ['2026-01', '2026-03']
    assert rows[0] == {
        'month': '2026-01', 'label': 'Jan 2026', 'orders': 2,
        'total_price': Decimal('15.50'), 'total_points': Decimal('4'),
    }

    assert [r['month'] for r in monthly_sales(orders, start_month='2026-02', end_month='2026-03')] == ['2026-03']
    with pytest.raises(ValidationError):
        monthly_sales(orders, start_month='2026-04', end_month='2026-01')
    with pytest.raises(ValidationError):
        monthly_sales(orders, start_month='2026-13')


def test_trailing_series_fills_empty_months():
    orders = [_delivered('a', _utc(2026, 1, 3), '10.00'), _delivered('old', _utc(2024, 1, 3), '99.00')]
    rows = trailing_months_series(orders, _utc(2026, 3, 15), months=12)
    assert len(rows) == 12
    assert rows[0]['label'] == 'Apr 2025'
    assert rows[-1]['month'] == '2026-03'
    assert [r['total_price'] for r in rows if r['orders']] == [Decimal('10.00')]


# ==============================================================================
# SERVICIO
# ==============================================================================

def test_dashboard(container, clock, make_product, make_customer, make_order):
    product = make_product(quantity=20, price='10.00', points='3')
    customer = make_customer()

    clock.set(2025, 12, 1, 10, 0)
    stale = make_order(customer, [(product, 1)])
    container.fulfillment_service.transition(ACCOUNT, stale.id, 'delivered')

    clock.set(2026, 3, 1, 10, 0)
    fresh = make_order(customer, [(product, 2)])
    container.fulfillment_service.transition(ACCOUNT, fresh.id, 'delivered')
    make_order(customer, [(product, 3)])
    cancelled = make_order(customer, [(product, 4)])
    container.fulfillment_service.transition(ACCOUNT, cancelled.id, 'cancelled')

    clock.set(2026, 3, 15, 12, 0)
    summary = container.stats_service.dashboard(ACCOUNT)

    assert summary['pending'] == {'count': 1, 'total_price': Decimal('30.00'), 'total_points': Decimal('9')}
    assert summary['delivered']['count'] == 1
    assert summary['delivered']['total_price'] == Decimal('20.00')
    assert summary['window_days'] == 60
    assert summary['inventory']['units'] == 17


def test_customer_and_partner_totals_include_everyone(container, make_product, make_customer, make_partner, make_order):
    product = make_product(quantity=20, price='2.00', points='1')
    lucia = make_customer('Lucía')
    make_customer('Ana')
    order = make_order(lucia, [(product, 1)])
    make_order(lucia, [(product, 2)])
    container.fulfillment_service.transition(ACCOUNT, order.id, 'cancelled')
    marta = make_partner('Marta')
    container.loan_service.create_loan(ACCOUNT, marta.id, product.id, 3)

    customers = container.stats_service.customer_totals(ACCOUNT)
    assert [c['customer_name'] for c in customers] == ['Ana', 'Lucía']
    assert customers[0]['count'] == 0
    assert customers[1]['count'] == 2
    assert customers[1]['total_price'] == Decimal('6.00')

    partners = container.stats_service.partner_totals(ACCOUNT)
    assert partners == [{
        'partner_id': marta.id, 'partner_name': 'Marta', 'loans': 1, 'quantity': 3,
        'total_price': Decimal('6.00'), 'total_points': Decimal('3'),
    }]


def test_sales_series_requires_positive_months(container):
    with pytest.raises(ValidationError):
        container.stats_service.sales_series(ACCOUNT, 0)
    assert len(container.stats_service.sales_series(ACCOUNT)) == 12
