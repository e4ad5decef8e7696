import sqlite3
import threading
from datetime import date
from decimal import Decimal

import pytest

from expense_ledger.core.models import Category, Transaction
from expense_ledger.database import TransactionStore
from expense_ledger.errors import PersistenceError


def _tx(day, description="Lunch", amount="10.00", category=Category.FOOD):
    return Transaction(date(2024, 1, day), description, category, Decimal(amount))


def test_empty_store(store):
    assert store.load_all() == []
    assert store.recent() == []
    assert store.summarize_by_category() == []


def test_round_trip_survives_reopen(tmp_path):
    db_path = tmp_path / "nested" / "txs.db"
    txs = [
        _tx(15, "Grocery Shopping", "85.43"),
        _tx(12, "Monthly Rent", "1200.00", Category.HOUSING),
    ]
    store = TransactionStore(str(db_path))
    stored = [store.save(tx) for tx in txs]
    assert stored[0].id < stored[1].id

    reopened = TransactionStore(str(db_path))
    assert reopened.load_all() == txs
    assert reopened.load_all()[1].amount == Decimal("1200.00")


def test_load_all_orders_by_date_desc_then_insertion(store):
    store.save(_tx(10, "first on the 10th"))
    store.save(_tx(20, "newest"))
    store.save(_tx(5, "older, saved later"))
    store.save(_tx(10, "second on the 10th"))

    assert [t.description for t in store.load_all()] == [
        "newest",
        "first on the 10th",
        "second on the 10th",
        "older, saved later",
    ]
    assert [t.description for t in store.recent(2)] == ["newest", "first on the 10th"]
    assert [s.id for s in store.load_all_stored()] == [2, 1, 4, 3]


def test_exists_and_summary(store):
    store.save(_tx(1, "Rent", "1200", Category.HOUSING))
    store.save(_tx(2, "Lunch", "10.50"))
    store.save(_tx(3, "Dinner", "20.00"))

    assert store.exists(_tx(2, "Lunch", "10.5"))
    assert not store.exists(_tx(2, "Lunch", "11"))

    assert store.summarize_by_category() == [
        {"category": "Housing", "total": Decimal("1200"), "transactions": 1},
        {"category": "Food", "total": Decimal("30.50"), "transactions": 2},
    ]


def test_concurrent_saves_are_all_persisted(store):
    def worker(n):
        for i in range(10):
            store.save(_tx(1 + (i % 28), f"worker {n} item {i}"))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    loaded = store.load_all()
    assert len(loaded) == 50
    assert [t.date for t in loaded] == sorted((t.date for t in loaded), reverse=True)


def test_write_failure_raises_persistence_error(store, monkeypatch):
    store.load_all()

    def broken_connect(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(sqlite3, "connect", broken_connect)
    with pytest.raises(PersistenceError, match="disk I/O error"):
        store.save(_tx(1))


def test_unwritable_location(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    store = TransactionStore(str(blocker / "txs.db"))
    with pytest.raises(PersistenceError):
        store.save(_tx(1))
