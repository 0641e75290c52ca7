from typing import Optional

from pydantic import ValidationError

from .logs import json_log
from .models import SaleTransaction
from .store import LocalStore, StoreUnavailable


class BufferWriteError(Exception):
    """A sale could not be persisted locally. The checkout must not complete."""


class OfflineSaleBuffer:
    """Sales completed on the register but not yet confirmed by the backend.

    Writes fail loudly so a sale is never silently dropped. Reads and deletes
    degrade to empty results when the store is unavailable; the next sync pass
    simply sees the records again.
    """

    def __init__(self, store: LocalStore):
        self.store = store

    def save(self, sale: SaleTransaction) -> None:
        bill_id = (sale.bill_id or "").strip()
        if not bill_id:
            raise ValueError("sale has no bill_id")
        try:
            self.store.set(bill_id, sale.to_json())
        except StoreUnavailable as ex:
            json_log("error", "offline_buffer.save_failed", bill_id=bill_id, error=str(ex))
            raise BufferWriteError(f"could not save sale {bill_id} locally: {ex}") from ex
        json_log("info", "offline_buffer.saved", bill_id=bill_id, final_amount=sale.final_amount)

    def list_pending(self) -> list[SaleTransaction]:
        try:
            rows = self.store.list()
        except StoreUnavailable as ex:
            json_log("error", "offline_buffer.list_failed", error=str(ex))
            return []
        out = []
        for bill_id, raw in rows:
            try:
                out.append(SaleTransaction.from_json(raw))
            except ValidationError as ex:
                # Leave the row in place; it needs a human, not a silent delete.
                json_log("error", "offline_buffer.decode_failed", bill_id=bill_id, error=str(ex))
        return out

    def get(self, bill_id: str) -> Optional[SaleTransaction]:
        try:
            raw = self.store.get(bill_id)
        except StoreUnavailable as ex:
            json_log("error", "offline_buffer.get_failed", bill_id=bill_id, error=str(ex))
            return None
        if raw is None:
            return None
        try:
            return SaleTransaction.from_json(raw)
        except ValidationError as ex:
            json_log("error", "offline_buffer.decode_failed", bill_id=bill_id, error=str(ex))
            return None

    def remove(self, bill_id: str) -> bool:
        try:
            return self.store.delete(bill_id)
        except StoreUnavailable as ex:
            json_log("error", "offline_buffer.remove_failed", bill_id=bill_id, error=str(ex))
            return False

    def count(self) -> int:
        try:
            return len(self.store.list())
        except StoreUnavailable as ex:
            json_log("error", "offline_buffer.count_failed", error=str(ex))
            return 0
