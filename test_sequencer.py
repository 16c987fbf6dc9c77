import random
import threading

from conftest import ScriptedGateway
from bouncer_cli.errors import TransportError
from bouncer_cli.models import Failed
from bouncer_cli.sequencer import DecisionSequencer, Phase
from bouncer_cli.session import Decision, GameSession


def started(gateway, game_id="g1", **kwargs):
    seq = DecisionSequencer(gateway, GameSession(game_id), **kwargs)
    seq.start().result(timeout=5)
    return seq


def test_first_fetch_has_no_decision(gateway):
    seq = started(gateway)

    assert gateway.calls == [("g1", 0, None)]
    assert seq.state.phase is Phase.AWAITING_DECISION
    assert seq.state.offer.personIndex == 0
    assert seq.session.cursor == 0
    assert seq.start() is None


def test_accept_is_paired_with_offered_person(gateway):
    seq = started(gateway)

    seq.accept().result(timeout=5)

    assert gateway.calls[-1] == ("g1", 0, True)
    assert seq.state.offer.personIndex == 1
    assert seq.session.history == (Decision(0, True),)
    assert seq.session.cursor == 1


def test_history_stays_consecutive_for_any_decision_sequence():
    rng = random.Random(7)
    gateway = ScriptedGateway(total=40)
    seq = started(gateway)

    while not seq.state.phase.terminal:
        seq.decide(rng.random() < 0.5).result(timeout=5)
        history = seq.session.history
        assert seq.session.cursor == len(history)
        assert [d.person_index for d in history] == list(range(len(history)))

    indices = [index for index, _ in gateway.decisions()]
    assert len(indices) == len(set(indices)) == 40
    assert seq.state.phase is Phase.COMPLETED


def test_second_decision_while_submitting_is_ignored(gateway):
    seq = started(gateway)
    gateway.gate = threading.Event()

    future = seq.accept()
    assert gateway.entered.wait(5)
    assert seq.state.phase is Phase.SUBMITTING
    assert seq.state.in_flight

    assert seq.reject() is None
    assert seq.accept() is None
    assert seq.retry() is None

    gateway.gate.set()
    future.result(timeout=5)

    assert gateway.decisions() == [(0, True)]
    assert seq.session.history == (Decision(0, True),)


def test_terminal_outcome_blocks_further_decisions():
    gateway = ScriptedGateway(total=2, final=Failed(reason="rejection limit exceeded", rejectedCount=2))
    seq = started(gateway)
    seq.reject().result(timeout=5)
    seq.reject().result(timeout=5)

    assert seq.state.phase is Phase.FAILED
    assert seq.state.outcome.reason == "rejection limit exceeded"
    calls = len(gateway.calls)
    for _ in range(3):
        assert seq.accept() is None
        assert seq.reject() is None
    assert len(gateway.calls) == calls
    assert seq.session.cursor == 2


def test_completed_outcome_carries_counts():
    gateway = ScriptedGateway(total=2)
    seq = started(gateway)
    seq.accept().result(timeout=5)
    seq.reject().result(timeout=5)

    assert seq.state.phase is Phase.COMPLETED
    assert (seq.state.outcome.admittedCount, seq.state.outcome.rejectedCount) == (1, 1)
    assert seq.state.offer is None


def test_failed_submission_keeps_state_for_retry(gateway):
    seq = started(gateway)
    gateway.failures.append(TransportError("Failed to get person"))

    seq.accept().result(timeout=5)

    state = seq.state
    assert state.phase is Phase.SUBMITTING
    assert not state.in_flight
    assert str(state.error) == "Failed to get person"
    assert state.offer.personIndex == 0
    assert seq.session.cursor == 0
    assert seq.session.history == ()
    # the pending decision cannot be swapped for another one
    assert seq.reject() is None

    seq.retry().result(timeout=5)

    assert gateway.decisions() == [(0, True), (0, True)]
    assert seq.state.error is None
    assert seq.state.offer.personIndex == 1
    assert seq.session.history == (Decision(0, True),)


def test_first_fetch_failure_can_be_retried(gateway):
    gateway.failures.append(TransportError("Failed to get person"))
    seq = DecisionSequencer(gateway, GameSession("g1"))
    seq.start().result(timeout=5)

    assert seq.state.phase is Phase.AWAITING_FIRST_PERSON
    assert seq.state.error is not None
    assert seq.accept() is None

    seq.retry().result(timeout=5)

    assert gateway.calls == [("g1", 0, None), ("g1", 0, None)]
    assert seq.state.phase is Phase.AWAITING_DECISION


def test_response_after_close_is_dropped(gateway):
    seq = started(gateway)
    gateway.gate = threading.Event()
    future = seq.accept()
    assert gateway.entered.wait(5)

    seq.close()
    gateway.gate.set()
    future.result(timeout=5)

    assert seq.session.history == ()
    assert seq.session.cursor == 0
    assert seq.state.offer.personIndex == 0


def test_unexpected_person_index_fails_the_session():
    gateway = ScriptedGateway()
    gateway.offset = 3
    seq = started(gateway)

    assert seq.state.phase is Phase.FAILED
    assert "expected 0" in seq.state.outcome.reason
    assert seq.accept() is None


def test_on_transition_runs_after_every_applied_response(gateway):
    transitions = []
    seq = started(gateway, on_transition=lambda: transitions.append(1))
    assert len(transitions) == 1

    seq.accept().result(timeout=5)
    seq.reject().result(timeout=5)

    assert len(transitions) == 3


def test_on_transition_skips_failed_calls(gateway):
    transitions = []
    gateway.failures.append(TransportError("Failed to get person"))
    seq = started(gateway, on_transition=lambda: transitions.append(1))

    assert seq.state.error is not None
    assert transitions == []
    seq.retry().result(timeout=5)
    assert transitions == [1]


def test_subscribers_never_see_cursor_and_history_disagree(gateway):
    seq = DecisionSequencer(gateway, GameSession("g1"))
    seen = []
    seq.updates.subscribe(seen.append)

    seq.start().result(timeout=5)
    seq.accept().result(timeout=5)
    seq.reject().result(timeout=5)

    assert seen
    for update in seen:
        assert update.session.cursor == len(update.session.history)
        if update.state.phase is Phase.AWAITING_DECISION:
            assert update.state.offer.personIndex == update.session.cursor
