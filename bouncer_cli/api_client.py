from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import requests

from .errors import NotFoundError, TransportError, validate_game_id, validate_new_game
from .models import DecisionOutcome, GameInit, StatusSnapshot, parse_game_init, parse_outcome, parse_status


logger = logging.getLogger(__name__)


class ApiClient:
    """Gateway to the remote game service.

    Only status reads are retried. Game creation and decisions are sent once;
    a failure surfaces as TransportError and the caller decides whether to
    resend.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        status_retries: int = 2,
        retry_delay: float = 2.5,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.status_retries = status_retries
        self.retry_delay = retry_delay
        self._http = session or requests

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        logger.debug("GET %s %s", url, params or {})
        try:
            resp = self._http.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}") from e
        if not resp.ok:
            message = _error_message(resp)
            if resp.status_code == 404:
                raise NotFoundError(message, status_code=404)
            raise TransportError(message, status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {url}: {e}") from e

    def _get_with_retry(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET with progressive back-off; client errors (4xx) are not retried."""
        attempts = self.status_retries + 1
        for attempt in range(attempts):
            try:
                return self._get(url, params)
            except TransportError as e:
                retryable = e.status_code is None or e.status_code >= 500
                if not retryable or attempt == attempts - 1:
                    raise
                wait_time = self.retry_delay * (attempt + 1)
                logger.warning("Request failed (attempt %d/%d): %s", attempt + 1, attempts, e)
                logger.info("Retrying in %.1f seconds...", wait_time)
                time.sleep(wait_time)
        raise AssertionError("unreachable")

    def create_game(self, player_id: str, scenario: int) -> GameInit:
        scenario = validate_new_game(player_id, scenario)
        url = f"{self.base_url}/new-game"
        data = self._get(url, {"scenario": scenario, "playerId": player_id})
        game = parse_game_init(data)
        logger.info("Created game %s (scenario %d)", game.gameId, scenario)
        return game

    def fetch_status(self, game_id: str) -> StatusSnapshot:
        game_id = validate_game_id(game_id)
        data = self._get_with_retry(f"{self.base_url}/api/game/{game_id}")
        return parse_status(data)

    def fetch_next_and_decide(self, game_id: str, person_index: int, accept: Optional[bool] = None) -> DecisionOutcome:
        url = f"{self.base_url}/decide-and-next"
        params: Dict[str, Any] = {"gameId": game_id, "personIndex": person_index}
        if accept is not None:
            params["accept"] = str(accept).lower()
        return parse_outcome(self._get(url, params))


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return f"{body['error']} (HTTP {resp.status_code})"
    return f"Request failed with HTTP {resp.status_code}"
