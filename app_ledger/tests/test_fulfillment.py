# -*- coding: utf-8 -*-
"""
Tests de la máquina de estados del pedido y sus efectos en stock
"""
import threading
from decimal import Decimal

import pytest

from app_ledger.errors import InsufficientStockError, InvalidTransitionError, NotFoundError, ValidationError
from app_ledger.models import OrderStatus
from app_ledger.services.fulfillment_service import can_transition

from conftest import ACCOUNT, OTHER_ACCOUNT, FIXED_NOW


def _quantity(container, product):
    return container.catalog_service.get_product(ACCOUNT, product.id).quantity


def test_transition_table():
    assert can_transition(OrderStatus.PENDING, OrderStatus.DELIVERED)
    assert can_transition(OrderStatus.PENDING, OrderStatus.CANCELLED)
    for terminal in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
        for target in OrderStatus:
            assert not can_transition(terminal, target)


def test_deliver_then_reject_when_stock_runs_out(container, make_product, make_customer, make_order):
    product = make_product(quantity=5, price='10.00', points='3')
    customer = make_customer()

    first = make_order(customer, [(product, 2)])
    assert first.total_price == Decimal('20.00')
    assert first.total_points == Decimal('6')

    delivered = container.fulfillment_service.transition(ACCOUNT, first.id, 'delivered')
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.is_paid is True
    assert delivered.completed_at == FIXED_NOW
    assert _quantity(container, product) == 3

    second = make_order(customer, [(product, 4)])
    with pytest.raises(InsufficientStockError):
        container.fulfillment_service.transition(ACCOUNT, second.id, 'delivered')

    assert _quantity(container, product) == 3
    still = container.order_service.get_order(ACCOUNT, second.id)
    assert still.status == OrderStatus.PENDING
    assert still.completed_at is None


def test_failed_delivery_rolls_back_every_line(container, make_product, make_customer, make_order):
    plenty = make_product(name='Aloe', quantity=10)
    scarce = make_product(name='Miel', quantity=1)
    order = make_order(make_customer(), [(plenty, 4), (scarce, 2)])

    with pytest.raises(InsufficientStockError) as excinfo:
        container.fulfillment_service.transition(ACCOUNT, order.id, 'delivered')
    assert excinfo.value.product_id == scarce.id

    assert _quantity(container, plenty) == 10
    assert _quantity(container, scarce) == 1
    assert container.order_service.get_order(ACCOUNT, order.id).status == OrderStatus.PENDING
    assert container.audit_service.get_logs(ACCOUNT, 'STOCK') == []


def test_cancel_has_no_stock_effect(container, make_product, make_customer, make_order):
    product = make_product(quantity=5)
    order = make_order(make_customer(), [(product, 5)], is_paid=False)

    cancelled = container.fulfillment_service.transition(ACCOUNT, order.id, 'cancelled')
    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.completed_at is None
    assert cancelled.is_paid is False
    assert _quantity(container, product) == 5


@pytest.mark.parametrize('first, second', [
    ('delivered', 'delivered'),
    ('delivered', 'cancelled'),
    ('cancelled', 'delivered'),
    ('cancelled', 'pending'),
])
def test_terminal_states_are_closed(container, make_product, make_customer, make_order, first, second):
    product = make_product(quantity=10)
    order = make_order(make_customer(), [(product, 1)])
    container.fulfillment_service.transition(ACCOUNT, order.id, first)
    stock = _quantity(container, product)

    with pytest.raises(InvalidTransitionError):
        container.fulfillment_service.transition(ACCOUNT, order.id, second)

    assert container.order_service.get_order(ACCOUNT, order.id).status == OrderStatus(first)
    assert _quantity(container, product) == stock


def test_pending_to_pending_is_invalid(container, make_product, make_customer, make_order):
    order = make_order(make_customer(), [(make_product(), 1)])
    with pytest.raises(InvalidTransitionError):
        container.fulfillment_service.transition(ACCOUNT, order.id, 'pending')


def test_unknown_status_and_order(container, make_product, make_customer, make_order):
    order = make_order(make_customer(), [(make_product(), 1)])
    with pytest.raises(ValidationError):
        container.fulfillment_service.transition(ACCOUNT, order.id, 'shipped')
    with pytest.raises(NotFoundError):
        container.fulfillment_service.transition(ACCOUNT, 'ghost', 'delivered')
    with pytest.raises(NotFoundError):
        container.fulfillment_service.transition(OTHER_ACCOUNT, order.id, 'delivered')


def test_delivery_skips_lines_of_missing_products(container, make_product, make_customer, make_order):
    kept = make_product(name='Aloe', quantity=5)
    gone = make_product(name='Miel', quantity=5)
    order = make_order(make_customer(), [(kept, 2), (gone, 3)])
    # Borrado directo en el repositorio: el servicio lo bloquearía por la línea
    container.product_repo.delete(ACCOUNT, gone.id)

    delivered = container.fulfillment_service.transition(ACCOUNT, order.id, 'delivered')

    assert delivered.status == OrderStatus.DELIVERED
    assert _quantity(container, kept) == 3
    skipped = [log for log in container.audit_service.get_logs(ACCOUNT, 'STOCK') if log.details.get('skipped')]
    assert len(skipped) == 1
    assert skipped[0].related_id == order.id
    assert skipped[0].details['product_id'] == gone.id


def test_concurrent_deliveries_never_oversell(container, make_product, make_customer, make_order):
    product = make_product(quantity=5)
    customer = make_customer()
    orders = [make_order(customer, [(product, 5)]) for _ in range(2)]

    barrier = threading.Barrier(len(orders))
    outcomes = {}

    def deliver(order_id):
        barrier.wait()
        try:
            container.fulfillment_service.transition(ACCOUNT, order_id, 'delivered')
            outcomes[order_id] = 'ok'
        except InsufficientStockError:
            outcomes[order_id] = 'insufficient'

    threads = [threading.Thread(target=deliver, args=(o.id,)) for o in orders]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes.values()) == ['insufficient', 'ok']
    assert _quantity(container, product) == 0
    statuses = sorted(container.order_service.get_order(ACCOUNT, o.id).status.value for o in orders)
    assert statuses == ['delivered', 'pending']


def test_status_change_is_audited(container, make_product, make_customer, make_order):
    order = make_order(make_customer(), [(make_product(), 1)])
    container.fulfillment_service.transition(ACCOUNT, order.id, 'delivered')
    entry = container.audit_service.get_logs(ACCOUNT, 'PEDIDO')[0]
    assert entry.related_id == order.id
    assert entry.details == {'from': 'pending', 'to': 'delivered'}
