# -*- coding: utf-8 -*-
"""
Tests de la API HTTP (sesión, CSRF y flujo completo)
"""
import pytest

from app_ledger import performance_logger

from conftest import ACCOUNT, OTHER_ACCOUNT, login


def _create(client, auth, path, payload):
    r = client.post(path, json=payload, headers=auth)
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def test_requires_session(client):
    r = client.get('/api/products')
    assert r.status_code == 401
    assert r.get_json()['ok'] is False


def test_mutations_require_csrf_token(client):
    login(client)
    r = client.post('/api/products', json={'name': 'Crema'})
    assert r.status_code == 403
    assert r.get_json()['kind'] == 'CSRFError'

    r = client.post('/api/products', json={'name': 'Crema'}, headers={'X-CSRF-Token': 'wrong'})
    assert r.status_code == 403

    r = client.post('/api/products', json={'name': 'Crema', 'csrf_token': 'tok-123'})
    assert r.status_code == 201


def test_session_returns_account_and_token(client, auth):
    data = client.get('/api/session').get_json()
    assert data == {'ok': True, 'account_id': ACCOUNT, 'csrf_token': 'tok-123'}


def test_order_flow(client, auth, clock):
    product = _create(client, auth, '/api/products', {
        'name': 'Crema', 'quantity': 5, 'price_per_unit': '10.00', 'points_per_unit': '3',
    })['product']
    customer = _create(client, auth, '/api/customers', {'name': 'Lucía'})['customer']

    order = _create(client, auth, '/api/orders', {
        'customer_id': customer['id'],
        'lines': [{'product_id': product['id'], 'quantity': 2}],
        'delivery_date': '2026-03-20',
    })['order']
    assert order['status'] == 'pending'
    assert order['is_paid'] is True
    assert order['total_price'] == '20.00'
    assert order['lines'][0]['price_at_sale'] == '10.00'

    r = client.post(f"/api/orders/{order['id']}/status", json={'status': 'delivered'}, headers=auth)
    assert r.status_code == 200
    assert r.get_json()['order']['status'] == 'delivered'
    assert client.get(f"/api/products/{product['id']}").get_json()['product']['quantity'] == 3

    second = _create(client, auth, '/api/orders', {
        'customer_id': customer['id'],
        'lines': [{'product_id': product['id'], 'quantity': 4}],
    })['order']
    r = client.post(f"/api/orders/{second['id']}/status", json={'status': 'delivered'}, headers=auth)
    assert r.status_code == 409
    assert r.get_json()['kind'] == 'InsufficientStockError'

    r = client.post(f"/api/orders/{order['id']}/status", json={'status': 'cancelled'}, headers=auth)
    assert r.status_code == 409
    assert r.get_json()['kind'] == 'InvalidTransitionError'

    pending = client.get('/api/orders?status=pending').get_json()['orders']
    assert [o['id'] for o in pending] == [second['id']]

    clock.advance(hours=1)
    summary = client.get('/api/dashboard').get_json()['summary']
    assert summary['pending']['total_price'] == '40.00'
    assert summary['delivered']['count'] == 1

    totals = client.get('/api/stats/delivered?start=2026-03-15&end=2026-03-15').get_json()['totals']
    assert totals['count'] == 1
    assert totals['total_price'] == '20.00'


def test_validation_and_not_found_errors(client, auth):
    r = client.post('/api/products', json={'name': 'Crema', 'quantity': -1}, headers=auth)
    assert r.status_code == 400
    assert r.get_json()['kind'] == 'ValidationError'

    r = client.post('/api/products', json={'name': 'Crema', 'price_per_unit': '1e30'}, headers=auth)
    assert r.status_code == 400
    assert r.get_json()['kind'] == 'ValidationError'

    r = client.get('/api/orders/ghost')
    assert r.status_code == 404
    assert r.get_json() == {'ok': False, 'kind': 'NotFoundError', 'error': 'Pedido ghost no encontrado'}

    r = client.get('/api/reports/payroll')
    assert r.status_code == 400

    r = client.get('/api/nowhere')
    assert r.status_code == 404
    assert r.get_json()['kind'] == 'HTTPError'


def test_accounts_are_isolated(client, auth):
    product = _create(client, auth, '/api/products', {'name': 'Crema', 'quantity': 1})['product']

    other = login(client, OTHER_ACCOUNT, 'tok-456')
    assert client.get('/api/products').get_json()['products'] == []
    assert client.get(f"/api/products/{product['id']}").status_code == 404
    r = client.delete(f"/api/products/{product['id']}", headers=other)
    assert r.status_code == 404


def test_loans_and_partner_cascade(client, auth):
    product = _create(client, auth, '/api/products', {'name': 'Crema', 'quantity': 10, 'price_per_unit': '2'})['product']
    partner = _create(client, auth, '/api/partners', {'name': 'Marta'})['partner']
    loan = _create(client, auth, '/api/loans', {
        'partner_id': partner['id'], 'product_id': product['id'], 'quantity': 4,
    })['loan']
    assert loan['loan_date'] == '2026-03-15'

    r = client.get('/api/partners/totals').get_json()['partners']
    assert r[0]['quantity'] == 4
    assert r[0]['total_price'] == '8.00'

    r = client.delete(f"/api/partners/{partner['id']}", headers=auth)
    assert r.get_json() == {'ok': True, 'deleted_loans': 1}
    assert client.get(f"/api/products/{product['id']}").get_json()['product']['quantity'] == 6

    # Sin préstamos que lo referencien el producto ya se puede eliminar
    assert client.delete(f"/api/products/{product['id']}", headers=auth).status_code == 200


def test_audit_log_is_per_account(client, auth):
    _create(client, auth, '/api/products', {'name': 'Crema'})
    logs = client.get('/api/audit?type=PRODUCTO').get_json()['logs']
    assert len(logs) == 1
    assert logs[0]['user'] == ACCOUNT

    login(client, OTHER_ACCOUNT)
    assert client.get('/api/audit').get_json()['logs'] == []


@pytest.mark.skipif(not performance_logger.ENABLE_PROFILING, reason="perfilado desactivado")
def test_performance_lists_profiled_functions(client, auth):
    performance_logger.reset_stats()
    product = _create(client, auth, '/api/products', {'name': 'Crema', 'quantity': 5})
    customer = _create(client, auth, '/api/customers', {'name': 'Lucía'})
    _create(client, auth, '/api/orders', {
        'customer_id': customer['customer']['id'],
        'lines': [{'product_id': product['product']['id'], 'quantity': 1}],
    })

    functions = client.get('/api/performance').get_json()['functions']
    assert functions['Crear pedido']['calls'] == 1
    assert 'Cambiar estado de pedido' not in functions
