from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .errors import GatewayError
from .models import StatusSnapshot


logger = logging.getLogger(__name__)


class StatusGateway(Protocol):
    def fetch_status(self, game_id: str) -> StatusSnapshot:
        ...


@dataclass(frozen=True)
class StatusUpdate:
    game_id: str
    snapshot: Optional[StatusSnapshot] = None
    error: Optional[GatewayError] = None


class StatusReconciler:
    """Polls the server's view of a game and posts it onto ``updates``.

    Runs on its own thread, refreshing every ``interval`` seconds and as soon
    as invalidate() is called. ``on_update``, when given, is called with each
    posted update. It never touches the session or the cursor.
    """

    def __init__(self, gateway: StatusGateway, game_id: str, interval: float = 5.0,
                 updates: Optional["queue.Queue[StatusUpdate]"] = None,
                 on_update: Optional[Callable[[StatusUpdate], None]] = None):
        self.gateway = gateway
        self.game_id = game_id
        self.interval = interval
        self.updates: "queue.Queue[StatusUpdate]" = updates if updates is not None else queue.Queue()
        self.on_update = on_update
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=f"status-{self.game_id[:8]}", daemon=True)
        self._thread.start()

    def invalidate(self) -> None:
        """Force a fresh read without waiting for the next tick."""
        self._wake.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopped.set()
        self._wake.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def refresh(self) -> Optional[StatusUpdate]:
        """Fetch one snapshot and post it. Returns None once stopped."""
        if self._stopped.is_set():
            return None
        try:
            update = StatusUpdate(self.game_id, snapshot=self.gateway.fetch_status(self.game_id))
        except GatewayError as e:
            logger.warning("Status refresh for %s failed: %s", self.game_id, e)
            update = StatusUpdate(self.game_id, error=e)
        if self._stopped.is_set():
            logger.debug("Dropping status for stopped game %s", self.game_id)
            return None
        self.updates.put(update)
        if self.on_update is not None:
            self.on_update(update)
        return update

    def _run(self) -> None:
        while not self._stopped.is_set():
            self._wake.clear()
            try:
                self.refresh()
            except Exception:
                logger.exception("Status refresh for %s raised; polling continues", self.game_id)
            self._wake.wait(self.interval)
