from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Callable, Optional, Protocol, Union

from .errors import GatewayError
from .events import Publisher
from .models import Completed, DecisionOutcome, Failed, PersonOffer, Running
from .session import GameSession, SessionSnapshot


logger = logging.getLogger(__name__)


class DecisionGateway(Protocol):
    def fetch_next_and_decide(self, game_id: str, person_index: int, accept: Optional[bool] = None) -> DecisionOutcome:
        ...


class Phase(enum.Enum):
    AWAITING_FIRST_PERSON = "awaiting_first_person"
    AWAITING_DECISION = "awaiting_decision"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (Phase.COMPLETED, Phase.FAILED)


@dataclass(frozen=True)
class SequencerState:
    phase: Phase = Phase.AWAITING_FIRST_PERSON
    offer: Optional[PersonOffer] = None
    pending: Optional[bool] = None
    in_flight: bool = False
    error: Optional[Exception] = None
    admitted: int = 0
    rejected: int = 0
    outcome: Optional[Union[Completed, Failed]] = None


@dataclass(frozen=True)
class SequencerUpdate:
    state: SequencerState
    session: SessionSnapshot


class DecisionSequencer:
    """Pairs each accept/reject with the person it was shown for.

    Phases run AWAITING_FIRST_PERSON -> AWAITING_DECISION -> SUBMITTING ->
    AWAITING_DECISION (next person) or COMPLETED / FAILED. Only one gateway
    call is in flight at a time. The session is committed only once the
    server has answered, and a failed call leaves the phase where it was so
    retry() can resend the identical (person_index, decision) pair.
    ``on_transition`` runs after every applied server response, the first
    person included.
    """

    def __init__(
        self,
        gateway: DecisionGateway,
        session: GameSession,
        executor: Optional[Executor] = None,
        on_transition: Optional[Callable[[], None]] = None,
    ):
        self.gateway = gateway
        self.session = session
        self.on_transition = on_transition
        self.updates: Publisher[SequencerUpdate] = Publisher()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"sequencer-{session.game_id[:8]}")
        self._lock = threading.RLock()
        self._state = SequencerState()
        self._closed = False

    @property
    def state(self) -> SequencerState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> Optional[Future]:
        """Fetch person 0. Ignored unless still awaiting the first person."""
        with self._lock:
            if self._closed or self._state.phase is not Phase.AWAITING_FIRST_PERSON or self._state.in_flight:
                return None
            return self._dispatch(0, None)

    def accept(self) -> Optional[Future]:
        return self.decide(True)

    def reject(self) -> Optional[Future]:
        return self.decide(False)

    def decide(self, accepted: bool) -> Optional[Future]:
        """Submit a decision for the person on display.

        Returns None, and sends nothing, when there is no person awaiting a
        decision: before the first person arrives, while a decision is
        submitting, and after the game has ended.
        """
        with self._lock:
            state = self._state
            if self._closed or state.phase is not Phase.AWAITING_DECISION or state.in_flight:
                logger.debug("Ignoring decision %s in phase %s", accepted, state.phase.value)
                return None
            return self._dispatch(state.offer.personIndex, accepted, phase=Phase.SUBMITTING, pending=accepted)

    def retry(self) -> Optional[Future]:
        """Resend the call that last failed, unchanged."""
        with self._lock:
            state = self._state
            if self._closed or state.in_flight or state.error is None:
                return None
            if state.phase is Phase.AWAITING_FIRST_PERSON:
                return self._dispatch(0, None)
            if state.phase is Phase.SUBMITTING:
                return self._dispatch(state.offer.personIndex, state.pending)
            return None

    def close(self) -> None:
        """Stop accepting input and drop any response still on its way."""
        # Not taken under self._lock: a worker publishing an update may be
        # waiting on the caller's lock.
        self._closed = True
        self.updates.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def _dispatch(self, person_index: int, accept: Optional[bool], **changes) -> Future:
        self._set(replace(self._state, in_flight=True, error=None, **changes))
        return self._executor.submit(self._call, self.session, person_index, accept)

    def _call(self, session: GameSession, person_index: int, accept: Optional[bool]) -> SequencerState:
        try:
            outcome = self.gateway.fetch_next_and_decide(session.game_id, person_index, accept)
        except Exception as e:
            with self._lock:
                if self._is_stale(session):
                    return self._state
                logger.warning("Call for person %d failed: %s", person_index, e)
                self._set(replace(self._state, in_flight=False, error=e))
            if not isinstance(e, GatewayError):
                raise
            return self._state

        with self._lock:
            if self._is_stale(session):
                return self._state
            self._apply(person_index, accept, outcome)
        if self.on_transition is not None:
            self.on_transition()
        return self._state

    def _is_stale(self, session: GameSession) -> bool:
        if self._closed or session is not self.session:
            logger.debug("Dropping response for closed session %s", session.game_id)
            return True
        return False

    def _apply(self, person_index: int, accept: Optional[bool], outcome: DecisionOutcome) -> None:
        if accept is not None:
            self.session.commit(person_index, accept)

        if isinstance(outcome, Running):
            offer = outcome.nextPerson
            if offer.personIndex != self.session.cursor:
                reason = f"server offered person {offer.personIndex}, expected {self.session.cursor}"
                logger.error("Person index mismatch: %s", reason)
                self._set(SequencerState(
                    phase=Phase.FAILED,
                    admitted=outcome.admittedCount,
                    rejected=outcome.rejectedCount,
                    outcome=Failed(reason=reason, rejectedCount=outcome.rejectedCount),
                ))
                return
            self._set(SequencerState(
                phase=Phase.AWAITING_DECISION,
                offer=offer,
                admitted=outcome.admittedCount,
                rejected=outcome.rejectedCount,
            ))
        elif isinstance(outcome, Completed):
            logger.info("Game %s completed: admitted %d, rejected %d",
                        self.session.game_id, outcome.admittedCount, outcome.rejectedCount)
            self._set(SequencerState(
                phase=Phase.COMPLETED,
                admitted=outcome.admittedCount,
                rejected=outcome.rejectedCount,
                outcome=outcome,
            ))
        else:
            logger.info("Game %s failed: %s", self.session.game_id, outcome.reason)
            self._set(SequencerState(
                phase=Phase.FAILED,
                admitted=self._state.admitted,
                rejected=outcome.rejectedCount,
                outcome=outcome,
            ))

    def _set(self, state: SequencerState) -> None:
        self._state = state
        self.updates.publish(SequencerUpdate(state=state, session=self.session.snapshot()))
