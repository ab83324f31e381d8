# -*- coding: utf-8 -*-
"""
Tests del almacén JSON y los repositorios
"""
import json
import os
import subprocess
import sys
import threading
from decimal import Decimal

import pytest

import app_ledger
from app_ledger.errors import LedgerTimeoutError
from app_ledger.models import Product
from app_ledger.repositories import (
    AuditRepository,
    CustomerRepository,
    IAuditRepository,
    ILoanRepository,
    IOrderRepository,
    IProductRepository,
    IStore,
    ITableRepository,
    JsonStore,
    LoanRepository,
    OrderRepository,
    ProductRepository,
)

from conftest import ACCOUNT, OTHER_ACCOUNT


@pytest.fixture
def store(tmp_path):
    return JsonStore(str(tmp_path / 'ledger.json'), lock_timeout=0.2)


@pytest.fixture
def products(store):
    return ProductRepository(store)


def _product(pid='p1', account_id=ACCOUNT, quantity=5):
    return Product(id=pid, account_id=account_id, name='Crema', quantity=quantity,
                   price_per_unit=Decimal('10.00'), points_per_unit=Decimal('3'))


def test_new_store_creates_empty_tables(store):
    with open(store.file_path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    for table in JsonStore.TABLES:
        assert data[table] == {}
    assert data['audit'] == []


def test_transaction_commits_on_success(store, products):
    with store.transaction():
        products.insert(_product('p1'))
        products.insert(_product('p2'))
    assert {p.id for p in products.list(ACCOUNT)} == {'p1', 'p2'}


def test_transaction_rolls_back_on_error(store, products):
    products.insert(_product('p1'))
    with pytest.raises(RuntimeError):
        with store.transaction():
            products.insert(_product('p2'))
            products.update(ACCOUNT, 'p1', {'quantity': 99})
            raise RuntimeError('boom')
    assert [p.id for p in products.list(ACCOUNT)] == ['p1']
    assert products.get(ACCOUNT, 'p1').quantity == 5
    assert not store.in_transaction


def test_read_inside_transaction_sees_pending_changes(store, products):
    with store.transaction():
        products.insert(_product('p1'))
        assert products.get(ACCOUNT, 'p1') is not None


def test_corrupt_file_raises_instead_of_resetting(store):
    with open(store.file_path, 'w', encoding='utf-8') as f:
        f.write('{not json')
    with pytest.raises(json.JSONDecodeError):
        with store.read():
            pass
    with open(store.file_path, 'r', encoding='utf-8') as f:
        assert f.read() == '{not json'


def test_no_temp_file_left_after_write(store, products):
    products.insert(_product())
    leftovers = [name for name in os.listdir(os.path.dirname(store.file_path)) if name.endswith('.tmp')]
    assert leftovers == []


def test_rows_of_other_account_are_invisible(products):
    products.insert(_product('p1', ACCOUNT))
    products.insert(_product('p2', OTHER_ACCOUNT))
    assert products.get(OTHER_ACCOUNT, 'p1') is None
    assert products.update(OTHER_ACCOUNT, 'p1', {'quantity': 0}) is None
    assert products.delete(OTHER_ACCOUNT, 'p1') is None
    assert [p.id for p in products.list(ACCOUNT)] == ['p1']
    assert products.get(ACCOUNT, 'p1').quantity == 5


def test_decrement_if_available(products):
    products.insert(_product(quantity=5))

    applied, product = products.decrement_if_available(ACCOUNT, 'p1', 2)
    assert applied and product.quantity == 3

    applied, product = products.decrement_if_available(ACCOUNT, 'p1', 4)
    assert not applied and product.quantity == 3

    applied, product = products.decrement_if_available(ACCOUNT, 'p1', 3)
    assert applied and product.quantity == 0

    assert products.decrement_if_available(ACCOUNT, 'missing', 1) == (False, None)
    assert products.decrement_if_available(OTHER_ACCOUNT, 'p1', 1) == (False, None)


def test_lock_timeout_raises(store):
    holding = threading.Event()
    release = threading.Event()

    def hold_lock():
        with store.transaction():
            holding.set()
            release.wait(5)

    worker = threading.Thread(target=hold_lock)
    worker.start()
    try:
        assert holding.wait(5)
        with pytest.raises(LedgerTimeoutError):
            with store.transaction():
                pass
    finally:
        release.set()
        worker.join()


DECREMENT_WORKER = """
import sys
from app_ledger.repositories import JsonStore, ProductRepository

path, account_id, attempts = sys.argv[1], sys.argv[2], int(sys.argv[3])
products = ProductRepository(JsonStore(path, lock_timeout=60))
print(sum(products.decrement_if_available(account_id, 'p1', 1)[0] for _ in range(attempts)))
"""


def test_decrement_is_atomic_across_processes(store, products):
    products.insert(_product(quantity=200))
    root = os.path.dirname(os.path.dirname(os.path.abspath(app_ledger.__file__)))
    env = dict(os.environ)
    env['PYTHONPATH'] = os.pathsep.join(filter(None, [root, env.get('PYTHONPATH')]))

    workers = [
        subprocess.Popen(
            [sys.executable, '-c', DECREMENT_WORKER, store.file_path, ACCOUNT, '150'],
            stdout=subprocess.PIPE, stderr=subprocess.PIPE, env=env, text=True
        )
        for _ in range(2)
    ]
    applied = []
    for worker in workers:
        out, err = worker.communicate(timeout=300)
        assert worker.returncode == 0, err
        applied.append(int(out))

    assert sum(applied) == 200
    assert products.get(ACCOUNT, 'p1').quantity == 0


def test_repositories_satisfy_protocols(store):
    assert isinstance(store, IStore)
    assert isinstance(ProductRepository(store), IProductRepository)
    assert isinstance(OrderRepository(store), IOrderRepository)
    assert isinstance(LoanRepository(store), ILoanRepository)
    assert isinstance(CustomerRepository(store), ITableRepository)
    assert isinstance(AuditRepository(store), IAuditRepository)


def test_audit_cap_is_per_account(store, monkeypatch):
    monkeypatch.setattr(AuditRepository, 'MAX_LOGS', 3)
    audit = AuditRepository(store)
    audit.log('PRODUCTO', OTHER_ACCOUNT, 'quieto')
    for n in range(5):
        audit.log('PRODUCTO', ACCOUNT, f'evento {n}')

    assert [log.message for log in audit.load(ACCOUNT)] == ['evento 4', 'evento 3', 'evento 2']
    assert [log.message for log in audit.load(OTHER_ACCOUNT)] == ['quieto']
