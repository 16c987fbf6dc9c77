from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Optional

from .errors import NotFoundError, TransportError, validate_game_id, validate_new_game
from .models import DecisionOutcome, GameInit, StatusSnapshot, parse_game_init, parse_outcome, parse_status
from simulated_api.models import GameRegistry, SimulationError, game_init_payload


class EmbeddedApiClient:
    """Gateway that plays against an in-process simulation instead of HTTP.

    Payloads go through the same parsers as ApiClient, and refusals map onto
    the same error types the HTTP gateway raises.
    """

    def __init__(self, registry: Optional[GameRegistry] = None, seed: Optional[int] = None):
        self.registry = registry or GameRegistry(seed=seed)
        # sequencer and reconciler threads share the registry
        self._lock = threading.Lock()

    def create_game(self, player_id: str, scenario: int) -> GameInit:
        scenario = validate_new_game(player_id, scenario)
        with self._lock, _translated():
            game_init = self.registry.new_game(scenario, player_id)
            return parse_game_init(game_init_payload(game_init))

    def fetch_status(self, game_id: str) -> StatusSnapshot:
        game_id = validate_game_id(game_id)
        with self._lock, _translated():
            return parse_status(self.registry.get(game_id).status_payload())

    def fetch_next_and_decide(self, game_id: str, person_index: int, accept: Optional[bool] = None) -> DecisionOutcome:
        with self._lock, _translated():
            game = self.registry.get(game_id)
            return parse_outcome(game.decide_and_next(person_index, accept))


@contextmanager
def _translated():
    try:
        yield
    except SimulationError as e:
        if e.status_code == 404:
            raise NotFoundError(e.message, status_code=404) from e
        raise TransportError(e.message, status_code=e.status_code) from e
