from decimal import Decimal

from pos_desktop import agent
from pos_desktop.buffer import OfflineSaleBuffer
from pos_desktop.connectivity import ManualProbe
from pos_desktop.remote import CommitResult, RemoteCommitError
from pos_desktop.store import MemoryStore


class _Committer:
    def __init__(self):
        self.calls = []
        self.fail = False

    def commit(self, sale):
        self.calls.append(sale.bill_id)
        if self.fail:
            raise RemoteCommitError("http 503 Service Unavailable")
        return CommitResult(bill_id=sale.bill_id, status="inserted")


def _runtime(online=False):
    notes = []
    rt = agent.AgentRuntime(
        OfflineSaleBuffer(MemoryStore()),
        _Committer(),
        ManualProbe(online=online),
        notify=lambda title, description, level="info": notes.append(title),
    )
    rt.sync.start()
    return rt, notes


def _sale_body(bill_id="INV-1000"):
    return {
        "bill_id": bill_id,
        "cart": [{"id": "atta-5kg", "name": "Atta 5kg", "price": "250", "qty": 1, "stock": 4}],
        "customer": {"name": "Walk-in", "phone": "9876543210"},
        "payment_method": "cash",
    }


def test_offline_sale_then_reconnect_drains_outbox():
    rt, notes = _runtime(online=False)

    status, body = agent.handle_api_post(rt, "/api/sale", _sale_body())
    assert status == 200
    assert body["queued"] is True
    assert body["pending"] == 1
    assert body["bill"]["final_amount"] == "250"

    status, body = agent.handle_api_get(rt, "/api/outbox")
    assert [s["bill_id"] for s in body["outbox"]] == ["INV-1000"]

    status, body = agent.handle_api_post(rt, "/api/sync/push", {})
    assert status == 409

    status, body = agent.handle_api_post(rt, "/api/connectivity", {"online": True})
    assert status == 200 and body["online"] is True
    assert rt.remote.calls == ["INV-1000"]

    status, body = agent.handle_api_get(rt, "/api/status")
    assert body["pending"] == 0
    assert body["online"] is True
    assert body["last_sync"]["synced"] == ["INV-1000"]
    assert "Sync Complete" in notes


def test_online_sale_failure_returns_503_and_queues_nothing():
    rt, _notes = _runtime(online=True)
    rt.remote.fail = True

    status, body = agent.handle_api_post(rt, "/api/sale", _sale_body())

    assert status == 503
    assert "Transaction failed" in body["error"]
    assert rt.buffer.count() == 0


def test_sale_input_errors_are_400():
    rt, _notes = _runtime(online=False)

    body = _sale_body()
    body["customer"] = {"name": "No Phone"}
    assert agent.handle_api_post(rt, "/api/sale", body)[0] == 400

    body = _sale_body()
    body["cart"] = []
    assert agent.handle_api_post(rt, "/api/sale", body)[0] == 400

    body = _sale_body()
    body["cart"][0]["qty"] = 9
    status, resp = agent.handle_api_post(rt, "/api/sale", body)
    assert status == 400
    assert "no more units" in resp["error"]


def test_cart_from_payload_accepts_both_field_spellings():
    cart = agent.cart_from_payload(
        [
            {"id": "a", "name": "A", "price": 10, "qty": 2},
            {"item_id": "b", "item_name": "B", "unit_price": "2.50", "quantity": 4, "stock": 10},
        ]
    )
    assert cart.subtotal() == Decimal("30.00")


def test_unknown_paths_are_404():
    rt, _notes = _runtime()
    assert agent.handle_api_get(rt, "/api/nope")[0] == 404
    assert agent.handle_api_post(rt, "/api/nope", {})[0] == 404


def test_customer_that_is_not_an_object_is_400():
    rt, _notes = _runtime(online=False)
    body = _sale_body()
    body["customer"] = "9876543210"

    status, resp = agent.handle_api_post(rt, "/api/sale", body)

    assert status == 400
    assert "customer" in resp["error"]
    assert rt.buffer.count() == 0


def test_configured_operator_is_used_when_sale_names_none():
    rt = agent.AgentRuntime(
        OfflineSaleBuffer(MemoryStore()),
        _Committer(),
        ManualProbe(online=False),
        default_user_id="cashier-2",
    )

    anonymous = {**_sale_body("INV-1"), "customer": {"phone": "9876543210"}}
    _status, body = agent.handle_api_post(rt, "/api/sale", anonymous)
    assert body["bill"]["user_id"] == "cashier-2"
    assert body["bill"]["customer"]["name"] == "Walk-in Customer"

    explicit = {**_sale_body("INV-2"), "user_id": "cashier-9"}
    _status, body = agent.handle_api_post(rt, "/api/sale", explicit)
    assert body["bill"]["user_id"] == "cashier-9"
