"""Replay of offline sales against the backend.

One pass at a time: a trigger that arrives while a pass is running is
dropped, not queued. The next connectivity transition (or a manual push)
picks up whatever is still pending.
"""

import enum
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from .buffer import OfflineSaleBuffer
from .connectivity import ConnectivityProbe
from .logs import json_log
from .models import SaleTransaction


class SyncState(str, enum.Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class Committer(Protocol):
    def commit(self, sale: SaleTransaction): ...


Notifier = Callable[[str, str, str], None]


def log_notifier(title: str, description: str, level: str = "info"):
    json_log(level, "pos.notification", title=title, description=description)


@dataclass
class SyncReport:
    attempted: int = 0
    synced: list = field(default_factory=list)
    failed: list = field(default_factory=list)  # [(bill_id, error)]
    pending: int = 0
    skipped: bool = False

    def as_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "synced": list(self.synced),
            "failed": [{"bill_id": b, "error": e} for b, e in self.failed],
            "pending": self.pending,
            "skipped": self.skipped,
        }


class SyncController:
    def __init__(
        self,
        buffer: OfflineSaleBuffer,
        committer: Committer,
        probe: ConnectivityProbe,
        notify: Notifier = log_notifier,
    ):
        self.buffer = buffer
        self.committer = committer
        self.probe = probe
        self.notify = notify
        self.state = SyncState.IDLE
        self.pending_count = 0
        self.last_report: Optional[SyncReport] = None
        self._guard = threading.Lock()
        self._unsubscribe = None

    def start(self):
        self._unsubscribe = self.probe.subscribe(self.on_connectivity_change)
        self.refresh_pending_count()
        if self.probe.is_online():
            self.sync_pending()

    def stop(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def refresh_pending_count(self) -> int:
        self.pending_count = self.buffer.count()
        return self.pending_count

    def on_connectivity_change(self, online: bool):
        if online:
            self.notify("You are back online!", "Checking for pending sales...", "info")
            self.sync_pending()
        else:
            self.notify("You are offline", "Sales will be saved locally.", "warning")

    def sync_pending(self) -> SyncReport:
        if not self._guard.acquire(blocking=False):
            json_log("info", "sync.skipped", reason="pass_in_flight")
            return SyncReport(pending=self.pending_count, skipped=True)
        try:
            self.state = SyncState.SYNCING
            return self._run_pass()
        finally:
            self.state = SyncState.IDLE
            self._guard.release()

    def _run_pass(self) -> SyncReport:
        report = SyncReport()
        snapshot = self.buffer.list_pending()
        self.pending_count = len(snapshot)
        if not snapshot:
            self.last_report = report
            return report

        json_log("info", "sync.started", pending=len(snapshot))
        self.notify("Syncing...", f"Uploading {len(snapshot)} offline sale(s).", "info")

        for sale in snapshot:
            report.attempted += 1
            try:
                self.committer.commit(sale)
            except Exception as ex:
                # A failing record stays queued; the rest of the batch still runs.
                report.failed.append((sale.bill_id, str(ex)))
                json_log("error", "sync.commit_failed", bill_id=sale.bill_id, error=str(ex))
                continue
            if not self.buffer.remove(sale.bill_id):
                # Backend dedupes by bill_id, so a leftover row replays as a duplicate.
                json_log("warning", "sync.remove_noop", bill_id=sale.bill_id)
            report.synced.append(sale.bill_id)

        report.pending = self.refresh_pending_count()
        self.last_report = report
        json_log(
            "info",
            "sync.finished",
            attempted=report.attempted,
            synced=len(report.synced),
            failed=len(report.failed),
            pending=report.pending,
        )
        if report.synced:
            self.notify("Sync Complete", f"{len(report.synced)} sale(s) successfully synced.", "info")
        return report
