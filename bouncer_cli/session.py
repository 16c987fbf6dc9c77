from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from .errors import SequenceError


@dataclass(frozen=True)
class Decision:
    person_index: int
    accepted: bool


@dataclass(frozen=True)
class SessionSnapshot:
    game_id: str
    cursor: int
    history: Tuple[Decision, ...]


class GameSession:
    """Cursor and decision history for one game.

    Only the sequencer calls commit(), and only after the server has confirmed
    the decision, so ``len(history) == cursor`` holds whenever it is observed.
    """

    def __init__(self, game_id: str):
        self.game_id = game_id
        self.cursor = 0
        self._history: List[Decision] = []

    @property
    def history(self) -> Tuple[Decision, ...]:
        return tuple(self._history)

    def commit(self, person_index: int, accepted: bool) -> Decision:
        if person_index != self.cursor:
            raise SequenceError(f"Decision for person {person_index} does not match cursor {self.cursor}")
        decision = Decision(person_index=person_index, accepted=accepted)
        self._history.append(decision)
        self.cursor = person_index + 1
        return decision

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(game_id=self.game_id, cursor=self.cursor, history=self.history)
