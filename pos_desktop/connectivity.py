import threading
from typing import Callable, Optional, Protocol

from .logs import json_log

Listener = Callable[[bool], None]


class ConnectivityProbe(Protocol):
    def is_online(self) -> bool: ...

    def subscribe(self, callback: Listener) -> Callable[[], None]: ...


class _Listeners:
    def __init__(self):
        self._lock = threading.Lock()
        self._items: list[Listener] = []

    def add(self, callback: Listener) -> Callable[[], None]:
        with self._lock:
            self._items.append(callback)

        def _unsubscribe():
            with self._lock:
                if callback in self._items:
                    self._items.remove(callback)

        return _unsubscribe

    def emit(self, online: bool):
        with self._lock:
            items = list(self._items)
        for cb in items:
            try:
                cb(online)
            except Exception as ex:
                json_log("error", "connectivity.listener_failed", online=online, error=str(ex))


class ManualProbe:
    """Connectivity set by hand (tests, or an operator forcing offline mode)."""

    def __init__(self, online: bool = True):
        self._online = bool(online)
        self._listeners = _Listeners()

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        return self._listeners.add(callback)

    def set_online(self, online: bool):
        online = bool(online)
        if online == self._online:
            return
        self._online = online
        json_log("info", "connectivity.changed", online=online, source="manual")
        self._listeners.emit(online)


class PollingProbe:
    """Polls a health check on a daemon thread and reports transitions.

    ``check`` returns truthy when the backend is reachable. A raising check
    counts as offline.
    """

    def __init__(self, check: Callable[[], bool], interval_s: float = 5.0, initial: Optional[bool] = None):
        self.check = check
        self.interval_s = max(0.1, float(interval_s or 5.0))
        self._online = self._run_check() if initial is None else bool(initial)
        self._listeners = _Listeners()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run_check(self) -> bool:
        try:
            return bool(self.check())
        except Exception as ex:
            json_log("warning", "connectivity.check_failed", error=str(ex))
            return False

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        return self._listeners.add(callback)

    def poll_once(self) -> bool:
        online = self._run_check()
        if online != self._online:
            self._online = online
            json_log("info", "connectivity.changed", online=online, source="poll")
            self._listeners.emit(online)
        return online

    def _loop(self):
        while not self._stop.wait(self.interval_s):
            self.poll_once()

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="pos-connectivity", daemon=True)
        self._thread.start()

    def stop(self, timeout_s: float = 2.0):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout_s)
            self._thread = None
