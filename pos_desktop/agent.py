#!/usr/bin/env python3
"""Register agent: local HTTP API for the till UI.

Run with ``python -m pos_desktop.agent``. Sales go straight to the backend
while it is reachable and into the SQLite offline buffer while it is not;
the sync controller replays the buffer on reconnect.
"""

import argparse
import json
import os
from decimal import Decimal, InvalidOperation
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

from . import config as agent_config
from .buffer import OfflineSaleBuffer
from .checkout import Cart, CartError, CheckoutError, CheckoutService, InvalidSale, Product
from .connectivity import ManualProbe, PollingProbe
from .logs import json_log
from .remote import RemoteCommitClient
from .store import SqliteStore
from .sync import SyncController


class AgentRuntime:
    def __init__(self, buffer, remote, probe, notify=None, default_user_id=None):
        self.buffer = buffer
        # Operator recorded on sales that do not name one.
        self.default_user_id = default_user_id or None
        self.remote = remote
        self.probe = probe
        kwargs = {"notify": notify} if notify else {}
        self.sync = SyncController(buffer, remote, probe, **kwargs)
        self.checkout = CheckoutService(buffer, remote, probe, on_queued=lambda _sale: self.sync.refresh_pending_count())

    def status(self) -> dict:
        last = self.sync.last_report
        return {
            "online": self.probe.is_online(),
            "sync_state": self.sync.state.value,
            "pending": self.sync.refresh_pending_count(),
            "last_sync": last.as_dict() if last else None,
        }


def build_runtime(cfg: dict, db_path: str, offline: bool = False) -> AgentRuntime:
    store = SqliteStore(db_path)
    store.init()
    remote = RemoteCommitClient(
        cfg.get("api_base_url") or "",
        device_id=cfg.get("device_id") or "",
        timeout_s=float(cfg.get("commit_timeout_s") or 10),
        health_timeout_s=float(cfg.get("health_timeout_s") or 0.8),
    )
    if offline:
        probe = ManualProbe(online=False)
    else:
        probe = PollingProbe(remote.is_reachable, interval_s=float(cfg.get("health_interval_s") or 5))
    return AgentRuntime(OfflineSaleBuffer(store), remote, probe, default_user_id=cfg.get("user_id") or None)


def _to_decimal(v) -> Decimal:
    try:
        return Decimal(str(v if v not in (None, "") else 0))
    except InvalidOperation as ex:
        raise CartError(f"invalid price: {v!r}") from ex


def cart_from_payload(lines) -> Cart:
    cart = Cart()
    for ln in lines or []:
        qty = int(ln.get("qty") or ln.get("quantity") or 0)
        if qty <= 0:
            raise CartError("cart quantities must be positive")
        stock = ln.get("stock")
        product = Product(
            item_id=str(ln.get("id") or ln.get("item_id") or "").strip(),
            item_name=str(ln.get("name") or ln.get("item_name") or "").strip(),
            unit_price=_to_decimal(ln.get("price") if ln.get("price") is not None else ln.get("unit_price")),
            # Without a stock figure from the UI there is nothing to check against.
            quantity=int(stock) if stock is not None else qty,
            is_available=bool(ln.get("is_available", True)),
        )
        if not product.item_id:
            raise CartError("cart line is missing an item id")
        cart.add(product, qty)
    return cart


def handle_api_get(runtime: AgentRuntime, path: str):
    if path == "/api/health":
        return 200, {"ok": True}
    if path == "/api/status":
        return 200, runtime.status()
    if path == "/api/outbox":
        sales = runtime.buffer.list_pending()
        return 200, {"outbox": [s.model_dump(mode="json") for s in sales], "pending": len(sales)}
    return 404, {"error": "not found"}


def handle_api_post(runtime: AgentRuntime, path: str, data: dict):
    if path == "/api/sale":
        try:
            cart = cart_from_payload(data.get("cart"))
        except (CartError, ValueError, TypeError, AttributeError) as ex:
            return 400, {"error": str(ex)}
        try:
            res = runtime.checkout.complete_sale(
                cart,
                data.get("customer") if data.get("customer") is not None else {},
                data.get("payment_method") or "cash",
                notes=data.get("notes") or "",
                bill_id=data.get("bill_id") or None,
                user_id=data.get("user_id") or runtime.default_user_id,
            )
        except InvalidSale as ex:
            return 400, {"error": str(ex)}
        except CheckoutError as ex:
            return 503, {"error": str(ex)}
        return 200, {
            "ok": True,
            "status": res.status,
            "queued": res.queued,
            "bill": res.sale.model_dump(mode="json"),
            "pending": runtime.sync.pending_count,
        }

    if path == "/api/sync/push":
        if not runtime.probe.is_online():
            return 409, {"error": "offline", "pending": runtime.sync.refresh_pending_count()}
        report = runtime.sync.sync_pending()
        return 200, {"ok": True, **report.as_dict()}

    if path == "/api/connectivity":
        if not isinstance(runtime.probe, ManualProbe):
            return 409, {"error": "connectivity is detected automatically"}
        runtime.probe.set_online(bool(data.get("online")))
        return 200, {"ok": True, "online": runtime.probe.is_online()}

    return 404, {"error": "not found"}


def json_response(handler, payload, status=200):
    body = json.dumps(payload, default=str).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json")
    handler.end_headers()
    handler.wfile.write(body)


class Handler(BaseHTTPRequestHandler):
    runtime: AgentRuntime = None

    def read_json(self):
        length = int(self.headers.get("Content-Length", 0))
        if length == 0:
            return {}
        raw = self.rfile.read(length).decode("utf-8")
        return json.loads(raw)

    def do_GET(self):
        parsed = urlparse(self.path)
        status, payload = handle_api_get(self.runtime, parsed.path)
        json_response(self, payload, status=status)

    def do_POST(self):
        parsed = urlparse(self.path)
        try:
            data = self.read_json()
        except ValueError:
            json_response(self, {"error": "invalid json"}, status=400)
            return
        if not isinstance(data, dict):
            json_response(self, {"error": "invalid json"}, status=400)
            return
        status, payload = handle_api_post(self.runtime, parsed.path, data)
        json_response(self, payload, status=status)

    def log_message(self, format, *args):
        json_log("info", "agent.http", client=self.client_address[0] if self.client_address else "", line=format % args)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--init-db", action="store_true", help="Initialize local SQLite schema and exit")
    parser.add_argument("--db", default=os.environ.get("POS_DB_PATH", agent_config.DB_PATH), help="SQLite DB path for the offline buffer")
    parser.add_argument("--config", default=os.environ.get("POS_CONFIG_PATH", agent_config.CONFIG_PATH), help="Config JSON path")
    parser.add_argument(
        "--host",
        default=os.environ.get("POS_HOST", "127.0.0.1"),
        help="HTTP host to bind (default: 127.0.0.1). Use 0.0.0.0 only if you explicitly want LAN exposure.",
    )
    parser.add_argument("--port", type=int, default=int(os.environ.get("POS_PORT", "7070")), help="HTTP port (default: 7070)")
    parser.add_argument("--offline", action="store_true", help="Start offline; toggle with POST /api/connectivity")
    args = parser.parse_args()

    if args.init_db:
        SqliteStore(args.db).init()
        print("ok")
        return

    cfg = agent_config.load_config(os.path.abspath(args.config))
    runtime = build_runtime(cfg, os.path.abspath(args.db), offline=args.offline)
    Handler.runtime = runtime
    runtime.sync.start()
    if isinstance(runtime.probe, PollingProbe):
        runtime.probe.start()

    server = ThreadingHTTPServer((args.host, args.port), Handler)
    public_host = "localhost" if args.host in {"127.0.0.1", "localhost"} else args.host
    print(f"POS Agent running on http://{public_host}:{args.port}")
    try:
        server.serve_forever()
    finally:
        runtime.sync.stop()
        if isinstance(runtime.probe, PollingProbe):
            runtime.probe.stop()


if __name__ == "__main__":
    main()
