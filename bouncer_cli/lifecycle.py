from __future__ import annotations

import enum
import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .errors import GatewayError, validate_game_id, validate_new_game
from .events import Publisher
from .models import DecisionOutcome, GameInit, StatusSnapshot
from .reconciler import StatusReconciler, StatusUpdate
from .sequencer import DecisionSequencer, SequencerState, SequencerUpdate
from .session import GameSession, SessionSnapshot


logger = logging.getLogger(__name__)


class GameGateway(Protocol):
    def create_game(self, player_id: str, scenario: int) -> GameInit:
        ...

    def fetch_status(self, game_id: str) -> StatusSnapshot:
        ...

    def fetch_next_and_decide(self, game_id: str, person_index: int, accept: Optional[bool] = None) -> DecisionOutcome:
        ...


class Mode(enum.Enum):
    CREATE = "create"
    JOIN = "join"
    PLAYING = "playing"


@dataclass(frozen=True)
class ClientView:
    mode: Mode
    created: Optional[GameInit] = None
    session: Optional[SessionSnapshot] = None
    sequencer: Optional[SequencerState] = None
    status: Optional[StatusSnapshot] = None
    status_error: Optional[GatewayError] = None

    @property
    def game_id(self) -> Optional[str]:
        return self.session.game_id if self.session else None


class GameClient:
    """Mode selector plus at most one active game session.

    create_game() and join_game() open a fresh session at cursor 0; back()
    tears it down, status cache included, and returns to the mode the game
    was opened from. Nothing of a torn-down session is
    applied to the next one.
    """

    def __init__(self, gateway: GameGateway, poll_interval: float = 5.0):
        self.gateway = gateway
        self.poll_interval = poll_interval
        self.changes: Publisher[ClientView] = Publisher()
        self._lock = threading.RLock()
        self._mode = Mode.CREATE
        self._setup_mode = Mode.CREATE
        self._created: Optional[GameInit] = None
        self._session: Optional[GameSession] = None
        self._sequencer: Optional[DecisionSequencer] = None
        self._reconciler: Optional[StatusReconciler] = None
        self._status_queue: "queue.Queue[StatusUpdate]" = queue.Queue()
        self._status: Optional[StatusSnapshot] = None
        self._status_error: Optional[GatewayError] = None

    @property
    def sequencer(self) -> Optional[DecisionSequencer]:
        return self._sequencer

    @property
    def reconciler(self) -> Optional[StatusReconciler]:
        return self._reconciler

    def subscribe(self, callback: Callable[[ClientView], None]) -> Callable[[], None]:
        return self.changes.subscribe(callback)

    def select_mode(self, mode: Mode) -> None:
        with self._lock:
            if self._session is not None:
                raise RuntimeError("Leave the current game before switching modes")
            if mode is Mode.PLAYING:
                raise ValueError("PLAYING is entered by creating or joining a game")
            self._mode = mode
        self._notify()

    def create_game(self, player_id: str, scenario: int) -> GameInit:
        scenario = validate_new_game(player_id, scenario)
        game = self.gateway.create_game(player_id, scenario)
        with self._lock:
            self._created = game
            self._open(game.gameId, Mode.CREATE)
        return game

    def join_game(self, game_id: str) -> StatusSnapshot:
        """Join an existing game once the server confirms it exists."""
        game_id = validate_game_id(game_id)
        snapshot = self.gateway.fetch_status(game_id)
        with self._lock:
            self._created = None
            self._open(game_id, Mode.JOIN)
            self._status = snapshot
        return snapshot

    def back(self) -> None:
        with self._lock:
            self._teardown()
            self._mode = self._setup_mode
        self._notify()

    def accept(self) -> Optional[Future]:
        return self._sequencer.accept() if self._sequencer else None

    def reject(self) -> Optional[Future]:
        return self._sequencer.reject() if self._sequencer else None

    def retry(self) -> Optional[Future]:
        return self._sequencer.retry() if self._sequencer else None

    def refresh_status(self) -> None:
        if self._reconciler is not None:
            self._reconciler.invalidate()

    def view(self) -> ClientView:
        with self._lock:
            self._drain_status()
            return ClientView(
                mode=self._mode,
                created=self._created,
                session=self._session.snapshot() if self._session else None,
                sequencer=self._sequencer.state if self._sequencer else None,
                status=self._status,
                status_error=self._status_error,
            )

    def close(self) -> None:
        with self._lock:
            self._teardown()
        self.changes.clear()

    def _open(self, game_id: str, setup_mode: Mode) -> None:
        self._teardown()
        session = GameSession(game_id)
        reconciler = StatusReconciler(self.gateway, game_id, interval=self.poll_interval,
                                      updates=self._status_queue, on_update=self._on_status_update)
        sequencer = DecisionSequencer(self.gateway, session, on_transition=reconciler.invalidate)
        sequencer.updates.subscribe(self._on_sequencer_update)
        self._session, self._sequencer, self._reconciler = session, sequencer, reconciler
        self._setup_mode, self._mode = setup_mode, Mode.PLAYING
        logger.info("Opened session for game %s", game_id)
        reconciler.start()
        sequencer.start()

    def _teardown(self) -> None:
        if self._sequencer is not None:
            self._sequencer.close()
        if self._reconciler is not None:
            self._reconciler.stop(timeout=0)
        if self._session is not None:
            logger.info("Closed session for game %s", self._session.game_id)
        self._session = self._sequencer = self._reconciler = None
        self._status = None
        self._status_error = None
        self._status_queue = queue.Queue()

    def _drain_status(self) -> None:
        game_id = self._session.game_id if self._session else None
        while True:
            try:
                update = self._status_queue.get_nowait()
            except queue.Empty:
                return
            if update.game_id != game_id:
                continue
            if update.snapshot is not None:
                self._status = update.snapshot
                self._status_error = None
            else:
                self._status_error = update.error

    def _on_sequencer_update(self, update: SequencerUpdate) -> None:
        if self._session is None or update.session.game_id != self._session.game_id:
            return
        self._notify()

    def _on_status_update(self, update: StatusUpdate) -> None:
        if self._session is None or update.game_id != self._session.game_id:
            return
        self._notify()

    def _notify(self) -> None:
        self.changes.publish(self.view())
