import json
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Optional

from .logs import json_log
from .models import SaleTransaction


class RemoteCommitError(Exception):
    """The backend did not confirm the sale. The caller keeps it."""


@dataclass
class CommitResult:
    bill_id: str
    status: str  # "inserted" | "duplicate"
    sale_id: Optional[str] = None
    stock_warnings: list = field(default_factory=list)


def _http_json(url: str, payload: Optional[dict] = None, headers: Optional[dict] = None, timeout_s: float = 10) -> dict:
    data = None
    method = "GET"
    if payload is not None:
        data = json.dumps(payload, default=str).encode("utf-8")
        method = "POST"
    req = urllib.request.Request(url, data=data, headers=headers or {}, method=method)
    if data is not None:
        req.add_header("Content-Type", "application/json")
    with urllib.request.urlopen(req, timeout=max(0.2, float(timeout_s or 10))) as resp:
        body = resp.read().decode("utf-8") if resp else ""
        if not body:
            return {}
        return json.loads(body)


class RemoteCommitClient:
    def __init__(self, base_url: str, device_id: str = "", timeout_s: float = 10, health_timeout_s: float = 0.8):
        self.base_url = (base_url or "").strip().rstrip("/")
        self.device_id = (device_id or "").strip()
        self.timeout_s = timeout_s
        self.health_timeout_s = health_timeout_s

    def _headers(self) -> dict:
        return {"X-Device-Id": self.device_id} if self.device_id else {}

    def commit(self, sale: SaleTransaction) -> CommitResult:
        if not self.base_url:
            raise RemoteCommitError("missing api_base_url")
        payload = sale.model_dump(mode="json")
        try:
            res = _http_json(f"{self.base_url}/sales/commit", payload, headers=self._headers(), timeout_s=self.timeout_s)
        except urllib.error.HTTPError as ex:
            # Non-2xx from the backend. Keep the body for the operator.
            try:
                body = ex.read().decode("utf-8")
            except Exception:
                body = ""
            msg = f"http {getattr(ex, 'code', None)} {getattr(ex, 'reason', '')}".strip()
            if body:
                msg = f"{msg}: {body[:500]}"
            raise RemoteCommitError(msg) from ex
        except (urllib.error.URLError, OSError, ValueError) as ex:
            raise RemoteCommitError(str(ex)) from ex

        status = str(res.get("status") or "").strip().lower()
        if status not in {"inserted", "duplicate"}:
            raise RemoteCommitError(f"unexpected commit response: {res}")
        warnings = list(res.get("stock_warnings") or [])
        for w in warnings:
            json_log("warning", "remote_commit.stock_warning", bill_id=sale.bill_id, **(w if isinstance(w, dict) else {"detail": w}))
        return CommitResult(
            bill_id=sale.bill_id,
            status=status,
            sale_id=(str(res["sale_id"]) if res.get("sale_id") else None),
            stock_warnings=warnings,
        )

    def health(self) -> dict:
        if not self.base_url:
            return {"ok": False, "error": "missing api_base_url", "latency_ms": None}
        started = time.time()
        try:
            data = _http_json(f"{self.base_url}/health", timeout_s=self.health_timeout_s)
            ok = bool((data or {}).get("ok", True))
            return {"ok": ok, "error": None, "latency_ms": int((time.time() - started) * 1000)}
        except Exception as ex:
            return {"ok": False, "error": str(ex), "latency_ms": int((time.time() - started) * 1000)}

    def is_reachable(self) -> bool:
        return bool(self.health().get("ok"))
