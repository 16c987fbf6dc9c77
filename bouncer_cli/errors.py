from __future__ import annotations

from typing import Optional


VALID_SCENARIOS = (1, 2, 3)


class GatewayError(Exception):
    """Base class for failures raised by a game gateway."""


class TransportError(GatewayError):
    """Non-success response or network failure. Safe to retry by hand."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(TransportError):
    pass


class ValidationError(GatewayError):
    """Missing or invalid input, detected before any network call."""


class SequenceError(ValueError):
    """A decision was committed out of cursor order."""


def validate_new_game(player_id: str, scenario) -> int:
    if not player_id or not str(player_id).strip():
        raise ValidationError("Player ID is required")
    try:
        scenario = int(scenario)
    except (TypeError, ValueError):
        raise ValidationError(f"Scenario must be one of {VALID_SCENARIOS}, got {scenario!r}")
    if scenario not in VALID_SCENARIOS:
        raise ValidationError(f"Scenario must be one of {VALID_SCENARIOS}, got {scenario!r}")
    return scenario


def validate_game_id(game_id: str) -> str:
    if not game_id or not str(game_id).strip():
        raise ValidationError("Game ID is required")
    return str(game_id).strip()
