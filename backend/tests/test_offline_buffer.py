from decimal import Decimal

import pytest

from pos_desktop.buffer import BufferWriteError, OfflineSaleBuffer
from pos_desktop.models import Customer, SaleTransaction
from pos_desktop.store import MemoryStore, SqliteStore, StoreUnavailable


def _sale(bill_id: str, amount: str = "250", method: str = "cash") -> SaleTransaction:
    return SaleTransaction.create(
        items=[{"item_id": "rice-5kg", "item_name": "Rice 5kg", "quantity": 1, "unit_price": Decimal(amount)}],
        customer=Customer(name="Asha", phone="9876543210"),
        payment_method=method,
        bill_id=bill_id,
    )


class _BrokenStore:
    def get(self, key):
        raise StoreUnavailable("disk gone")

    def set(self, key, value):
        raise StoreUnavailable("disk gone")

    def delete(self, key):
        raise StoreUnavailable("disk gone")

    def list(self):
        raise StoreUnavailable("disk gone")


def test_saved_sale_is_listed_until_removed():
    buf = OfflineSaleBuffer(MemoryStore())
    buf.save(_sale("INV-1000"))

    pending = buf.list_pending()
    assert [s.bill_id for s in pending] == ["INV-1000"]
    assert pending[0].final_amount == Decimal("250")
    assert buf.count() == 1

    assert buf.remove("INV-1000") is True
    assert buf.list_pending() == []


def test_remove_twice_is_a_noop():
    buf = OfflineSaleBuffer(MemoryStore())
    buf.save(_sale("INV-1"))
    assert buf.remove("INV-1") is True
    assert buf.remove("INV-1") is False
    assert buf.remove("never-saved") is False
    assert buf.count() == 0


def test_list_pending_does_not_mutate():
    buf = OfflineSaleBuffer(MemoryStore())
    buf.save(_sale("INV-1"))
    buf.save(_sale("INV-2"))
    first = buf.list_pending()
    second = buf.list_pending()
    assert [s.bill_id for s in first] == [s.bill_id for s in second] == ["INV-1", "INV-2"]


def test_sqlite_store_survives_restart(tmp_path):
    db = tmp_path / "pos.sqlite"
    OfflineSaleBuffer(SqliteStore(str(db))).save(_sale("INV-1000"))

    # Fresh objects on the same file, as after a process restart.
    reopened = OfflineSaleBuffer(SqliteStore(str(db)))
    pending = reopened.list_pending()
    assert len(pending) == 1
    assert pending[0] == _sale("INV-1000").model_copy(update={"timestamp": pending[0].timestamp})
    assert pending[0].customer.phone == "9876543210"


def test_sqlite_overwrite_keeps_insertion_order(tmp_path):
    buf = OfflineSaleBuffer(SqliteStore(str(tmp_path / "pos.sqlite")))
    buf.save(_sale("INV-1", "10"))
    buf.save(_sale("INV-2", "20"))
    buf.save(_sale("INV-1", "15"))

    pending = buf.list_pending()
    assert [s.bill_id for s in pending] == ["INV-1", "INV-2"]
    assert pending[0].final_amount == Decimal("15")


def test_sqlite_roundtrip_preserves_totals_and_timestamp(tmp_path):
    buf = OfflineSaleBuffer(SqliteStore(str(tmp_path / "pos.sqlite")))
    sale = _sale("INV-7", "99.95", method="UPI")
    buf.save(sale)
    again = buf.get("INV-7")
    assert again == sale
    assert again.payment_method == "online"
    assert again.timestamp.tzinfo is not None


def test_save_fails_loudly_when_store_is_unavailable():
    buf = OfflineSaleBuffer(_BrokenStore())
    with pytest.raises(BufferWriteError):
        buf.save(_sale("INV-1"))


def test_reads_and_removes_degrade_when_store_is_unavailable():
    buf = OfflineSaleBuffer(_BrokenStore())
    assert buf.list_pending() == []
    assert buf.remove("INV-1") is False
    assert buf.count() == 0
    assert buf.get("INV-1") is None


def test_undecodable_rows_are_skipped_but_kept():
    store = MemoryStore()
    buf = OfflineSaleBuffer(store)
    buf.save(_sale("INV-1"))
    store.set("INV-garbage", "{not json")

    assert [s.bill_id for s in buf.list_pending()] == ["INV-1"]
    assert store.get("INV-garbage") == "{not json"


def test_sqlite_store_unopenable_path_raises_store_unavailable(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = SqliteStore(str(blocker / "pos.sqlite"))
    with pytest.raises(StoreUnavailable):
        store.list()
    with pytest.raises(BufferWriteError):
        OfflineSaleBuffer(store).save(_sale("INV-1"))


def test_get_of_undecodable_row_returns_none():
    store = MemoryStore()
    store.set("INV-garbage", "{not json")
    assert OfflineSaleBuffer(store).get("INV-garbage") is None
    assert store.get("INV-garbage") == "{not json"


def test_schema_failure_closes_the_connection(tmp_path, monkeypatch):
    import sqlite3

    from pos_desktop import store as store_mod

    closed = []

    class _Conn:
        def executescript(self, _sql):
            raise sqlite3.DatabaseError("file is not a database")

        def close(self):
            closed.append(True)

    monkeypatch.setattr(store_mod.sqlite3, "connect", lambda *a, **k: _Conn())
    with pytest.raises(StoreUnavailable):
        SqliteStore(str(tmp_path / "pos.sqlite")).list()
    assert closed == [True]
