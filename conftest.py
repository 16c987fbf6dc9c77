from __future__ import annotations

import threading
from typing import List, Optional, Tuple

import pytest

from bouncer_cli.errors import NotFoundError, validate_game_id, validate_new_game
from bouncer_cli.models import (
    Completed,
    Constraint,
    ConstraintProgress,
    DecisionOutcome,
    GameInit,
    GameSummary,
    PersonOffer,
    Running,
    StatusMetrics,
    StatusSnapshot,
)


def make_status(game_id: str, admitted: int = 0, rejected: int = 0, rejections_until_limit: int = 20000) -> StatusSnapshot:
    return StatusSnapshot(
        game=GameSummary(gameId=game_id, playerName="p1", scenario="1", admitted=admitted, rejected=rejected),
        constraints=(ConstraintProgress("young", "Young", admitted, 600, 100.0 * admitted / 600, admitted >= 600, admitted > 600),),
        metrics=StatusMetrics(rejectionsUntilLimit=rejections_until_limit, isNearRejectionLimit=rejections_until_limit < 1000),
    )


class ScriptedGateway:
    """In-memory game that reveals persons 0, 1, 2, ... until ``total`` decisions.

    ``failures`` are raised by the next decide calls in order; ``gate``, when
    set, holds every call that carries a decision until it is released.
    """

    def __init__(self, total: int = 5, final: Optional[DecisionOutcome] = None):
        self.total = total
        self.final = final
        self.calls: List[Tuple[str, int, Optional[bool]]] = []
        self.status_calls: List[str] = []
        self.created: List[Tuple[str, int]] = []
        self.games = set()
        self.failures: List[Exception] = []
        self.status_failures: List[Exception] = []
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self.offset = 0
        self.rejections_until_limit = 20000
        self.admitted = 0
        self.rejected = 0
        self._next_id = 0

    def add_game(self, game_id: str) -> None:
        self.games.add(game_id)

    def create_game(self, player_id: str, scenario: int) -> GameInit:
        scenario = validate_new_game(player_id, scenario)
        self.created.append((player_id, scenario))
        self._next_id += 1
        game_id = f"g{self._next_id}"
        self.games.add(game_id)
        self.admitted = self.rejected = 0
        return GameInit(
            gameId=game_id,
            constraints=[Constraint("young", 600)],
            relativeFrequencies={"young": 0.3225},
            correlations={"young": {"young": 1.0}},
        )

    def fetch_status(self, game_id: str) -> StatusSnapshot:
        game_id = validate_game_id(game_id)
        self.status_calls.append(game_id)
        if self.status_failures:
            raise self.status_failures.pop(0)
        if game_id not in self.games:
            raise NotFoundError("Game not found (HTTP 404)", status_code=404)
        return make_status(game_id, self.admitted, self.rejected, self.rejections_until_limit)

    def fetch_next_and_decide(self, game_id: str, person_index: int, accept: Optional[bool] = None) -> DecisionOutcome:
        self.calls.append((game_id, person_index, accept))
        if accept is not None and self.gate is not None:
            self.entered.set()
            assert self.gate.wait(5), "gate never released"
        if self.failures:
            raise self.failures.pop(0)
        if accept is None:
            return Running(PersonOffer(self.offset, _attributes(self.offset)), self.admitted, self.rejected)
        if accept:
            self.admitted += 1
        else:
            self.rejected += 1
        if self.admitted + self.rejected >= self.total:
            return self.final or Completed(admittedCount=self.admitted, rejectedCount=self.rejected)
        nxt = person_index + 1 + self.offset
        return Running(PersonOffer(nxt, _attributes(nxt)), self.admitted, self.rejected)

    def decisions(self) -> List[Tuple[int, bool]]:
        return [(index, accept) for _, index, accept in self.calls if accept is not None]


def _attributes(index: int):
    return {"young": index % 2 == 0, "well_dressed": index % 3 == 0}


@pytest.fixture
def gateway():
    return ScriptedGateway()
