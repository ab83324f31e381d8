import os
from datetime import datetime, timedelta, timezone

import pytest

from app_ledger.app_container import AppContainer
from app_ledger.main import create_app

ACCOUNT = 'acct-ana'
OTHER_ACCOUNT = 'acct-beto'

FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Reloj controlable: los servicios lo llaman como clock()."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)

    def set(self, *args):
        self.now = datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture
def container(tmp_path, clock):
    AppContainer.reset_instance()
    c = AppContainer(data_dir=str(tmp_path / 'data'), lock_timeout=5.0, clock=clock)
    yield c
    AppContainer.reset_instance()


@pytest.fixture
def make_product(container):
    def _make(name='Crema', quantity=10, price='10.00', points='3', account_id=ACCOUNT):
        return container.catalog_service.create_product(account_id, {
            'name': name,
            'quantity': quantity,
            'price_per_unit': price,
            'points_per_unit': points,
        })
    return _make


@pytest.fixture
def make_customer(container):
    def _make(name='Lucía', account_id=ACCOUNT):
        return container.registry_service.create_customer(account_id, {'name': name, 'phone': '555-0101'})
    return _make


@pytest.fixture
def make_partner(container):
    def _make(name='Marta', account_id=ACCOUNT):
        return container.registry_service.create_partner(account_id, {'name': name})
    return _make


@pytest.fixture
def make_order(container):
    def _make(customer, items, account_id=ACCOUNT, **kwargs):
        lines = [{'product_id': product.id, 'quantity': qty} for product, qty in items]
        return container.order_service.create_order(account_id, customer.id, lines, **kwargs)
    return _make


# ==============================================================================
# CLIENTE HTTP
# ==============================================================================

@pytest.fixture
def app(tmp_path, clock):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'DATA_DIR': str(tmp_path / 'data'),
        'LOG_DIR': str(tmp_path / 'logs'),
        'CLOCK': clock,
    })
    yield app
    AppContainer.reset_instance()


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


def login(client, account_id=ACCOUNT, token='tok-123'):
    """Sesión con cuenta y token CSRF; retorna los headers para POST/PATCH/DELETE."""
    with client.session_transaction() as sess:
        sess['account_id'] = account_id
        sess['csrf_token'] = token
    return {'X-CSRF-Token': token}


@pytest.fixture
def auth(client):
    return login(client)


def ledger_path(tmp_path):
    return os.path.join(str(tmp_path), 'data', 'ledger.json')
