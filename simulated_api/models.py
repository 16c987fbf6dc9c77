from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
from scipy.stats import multivariate_normal, norm

from bouncer_cli.models import AttributeId, Constraint, GameInit


VENUE_CAPACITY = 1000
REJECTION_LIMIT = 20000
NEAR_LIMIT_FRACTION = 0.95

SCENARIOS_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "scenarios.json")


class SimulationError(Exception):
    """A request the simulated service refuses; carries the HTTP status to answer with."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PersonGenerator:
    """Generates people based on attribute correlations using Gaussian copula"""

    def __init__(self, relative_frequencies: Mapping[AttributeId, float],
                 correlations: Mapping[AttributeId, Mapping[AttributeId, float]],
                 attribute_order: List[AttributeId],
                 seed: Optional[int] = None):
        self.relative_frequencies = relative_frequencies
        self.correlations = correlations
        self.attribute_order = attribute_order
        self.rng = np.random.default_rng(seed)
        self.cov_matrix = self._build_covariance_matrix()

    def _build_covariance_matrix(self) -> np.ndarray:
        """Build covariance matrix from correlations"""
        n = len(self.attribute_order)
        cov = np.eye(n)

        for i, attr1 in enumerate(self.attribute_order):
            for j, attr2 in enumerate(self.attribute_order):
                if i != j:
                    cov[i, j] = self.correlations.get(attr1, {}).get(attr2, 0.0)

        return cov

    def generate_person(self) -> Dict[AttributeId, bool]:
        """Generate a person with correlated binary attributes"""
        n_attrs = len(self.attribute_order)
        mean = np.zeros(n_attrs)

        try:
            normals = multivariate_normal.rvs(mean=mean, cov=self.cov_matrix, size=1, random_state=self.rng)
            uniforms = np.atleast_1d(norm.cdf(normals))
        except (np.linalg.LinAlgError, ValueError):
            # Covariance matrix not positive semi-definite: sample independently
            uniforms = self.rng.random(n_attrs)

        return {
            attr: bool(uniforms[i] < self.relative_frequencies[attr])
            for i, attr in enumerate(self.attribute_order)
        }


@dataclass
class SimulatedGame:
    game_id: str
    scenario: int
    player_id: str
    constraints: List[Constraint]
    relative_frequencies: Mapping[AttributeId, float]
    correlations: Mapping[AttributeId, Mapping[AttributeId, float]]
    attribute_order: List[AttributeId]
    seed: Optional[int] = None
    admitted_count: int = 0
    rejected_count: int = 0
    person_index: int = 0
    status: str = "running"
    reason: Optional[str] = None
    current_person_attributes: Optional[Dict[AttributeId, bool]] = None
    admitted_attributes: Dict[AttributeId, int] = field(default_factory=dict)
    start_time: str = field(default_factory=_now)
    end_time: Optional[str] = None

    def __post_init__(self):
        if not self.admitted_attributes:
            self.admitted_attributes = {attr: 0 for attr in self.relative_frequencies.keys()}
        self.person_generator = PersonGenerator(
            self.relative_frequencies, self.correlations, self.attribute_order, seed=self.seed
        )

    def is_complete(self) -> bool:
        """Check if the game is complete (venue full or too many rejections)"""
        return self.admitted_count >= VENUE_CAPACITY or self.rejected_count >= REJECTION_LIMIT

    def check_constraints_satisfied(self) -> bool:
        """Check if all constraints are satisfied"""
        for constraint in self.constraints:
            if self.admitted_attributes[constraint.attribute] < constraint.minCount:
                return False
        return True

    def get_status(self) -> str:
        """Get the current game status"""
        if self.is_complete():
            if self.admitted_count >= VENUE_CAPACITY and self.check_constraints_satisfied():
                return "completed"
            else:
                return "failed"
        return "running"

    def failure_reason(self) -> str:
        if self.rejected_count >= REJECTION_LIMIT:
            return "rejection limit exceeded"
        if self.admitted_count >= VENUE_CAPACITY and not self.check_constraints_satisfied():
            return "constraints not satisfied at capacity"
        return "game ended in failed state"

    def _running_payload(self) -> Dict[str, Any]:
        return {
            "status": "running",
            "admittedCount": self.admitted_count,
            "rejectedCount": self.rejected_count,
            "nextPerson": {
                "personIndex": self.person_index,
                "attributes": dict(self.current_person_attributes),
            },
        }

    def _terminal_payload(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "status": self.status,
            "admittedCount": self.admitted_count,
            "rejectedCount": self.rejected_count,
            "nextPerson": None,
            "admittedAttributes": dict(self.admitted_attributes),
        }
        if self.status == "failed":
            response["reason"] = self.reason
        return response

    def decide_and_next(self, person_index: int, accept: Optional[bool]) -> Dict[str, Any]:
        """Apply the decision for ``person_index`` and reveal the next person.

        Without ``accept`` this only reveals person 0, and may be repeated.
        """
        if self.status != "running":
            raise SimulationError("Game is already over")

        if person_index != self.person_index:
            raise SimulationError("Invalid person index")

        if accept is None:
            if person_index > 0:
                raise SimulationError("Accept parameter required for person_index > 0")
            if self.current_person_attributes is None:
                self.current_person_attributes = self.person_generator.generate_person()
            return self._running_payload()

        if self.current_person_attributes is None:
            raise SimulationError("No person has been revealed yet")

        if accept:
            self.admitted_count += 1
            for attr, has_attr in self.current_person_attributes.items():
                if has_attr:
                    self.admitted_attributes[attr] += 1
        else:
            self.rejected_count += 1

        status = self.get_status()
        if status != "running":
            self.status = status
            self.reason = self.failure_reason() if status == "failed" else None
            self.end_time = _now()
            self.current_person_attributes = None
            return self._terminal_payload()

        self.person_index += 1
        self.current_person_attributes = self.person_generator.generate_person()
        return self._running_payload()

    def status_payload(self) -> Dict[str, Any]:
        """Snapshot in the shape of GET /api/game/{gameId}."""
        constraints = []
        for c in self.constraints:
            current = self.admitted_attributes.get(c.attribute, 0)
            constraints.append({
                "attribute": c.attribute,
                "label": c.attribute.replace("_", " ").title(),
                "current": current,
                "target": c.minCount,
                "percentage": 100.0 * current / c.minCount if c.minCount else 100.0,
                "isComplete": current >= c.minCount,
                "isOverTarget": current > c.minCount,
            })

        decided = self.admitted_count + self.rejected_count
        rejections_left = max(0, REJECTION_LIMIT - self.rejected_count)
        revealed = self.person_index + (1 if self.current_person_attributes is not None else 0)
        return {
            "game": {
                "gameId": self.game_id,
                "playerName": self.player_id,
                "level": self.scenario,
                "scenario": str(self.scenario),
                "status": self.status,
                "startTime": self.start_time,
                "endTime": self.end_time,
                "finalScore": self.rejected_count if self.status == "completed" else None,
                "admitted": self.admitted_count,
                "rejected": self.rejected_count,
                "personCount": max(revealed, decided),
            },
            "constraints": constraints,
            "metrics": {
                "capacityProgress": self.admitted_count / VENUE_CAPACITY,
                "acceptanceRate": self.admitted_count / decided if decided else 0.0,
                "rejectionProgress": self.rejected_count / REJECTION_LIMIT,
                "rejectionsUntilLimit": rejections_left,
                "isNearRejectionLimit": self.rejected_count >= NEAR_LIMIT_FRACTION * REJECTION_LIMIT,
            },
            "occupancy": dict(self.admitted_attributes),
            "lastUpdated": _now(),
        }


class ScenarioData:
    """Manages scenario data loaded from scenarios.json"""

    def __init__(self, scenarios_file: str = SCENARIOS_FILE):
        with open(scenarios_file, 'r') as f:
            data = json.load(f)
        self.scenarios = data['scenarios']

    def get_scenario(self, scenario_id: int) -> Dict:
        """Get scenario data by ID"""
        try:
            return self.scenarios[str(scenario_id)]
        except KeyError:
            raise SimulationError("Invalid scenario")

    def create_game_init(self, scenario_id: int) -> GameInit:
        """Create GameInit object for a scenario"""
        scenario = self.get_scenario(scenario_id)
        constraints = [Constraint(**c) for c in scenario["constraints"]]
        rel_freq = scenario["attributeStatistics"]["relativeFrequencies"]
        correlations = scenario["attributeStatistics"]["correlations"]

        return GameInit(
            gameId=str(uuid.uuid4()),
            constraints=constraints,
            relativeFrequencies=rel_freq,
            correlations=correlations,
        )


class GameRegistry:
    """All games created against one simulated service."""

    def __init__(self, scenario_data: Optional[ScenarioData] = None, seed: Optional[int] = None):
        self.scenario_data = scenario_data or ScenarioData()
        self.seed = seed
        self.games: Dict[str, SimulatedGame] = {}

    def new_game(self, scenario: int, player_id: str) -> GameInit:
        if not player_id:
            raise SimulationError("playerId is required")
        game_init = self.scenario_data.create_game_init(scenario)
        self.games[game_init.gameId] = SimulatedGame(
            game_id=game_init.gameId,
            scenario=scenario,
            player_id=player_id,
            constraints=game_init.constraints,
            relative_frequencies=game_init.relativeFrequencies,
            correlations=game_init.correlations,
            attribute_order=list(game_init.relativeFrequencies.keys()),
            seed=self.seed,
        )
        return game_init

    def get(self, game_id: Optional[str]) -> SimulatedGame:
        game = self.games.get(game_id or "")
        if game is None:
            raise SimulationError("Game not found", status_code=404)
        return game


def game_init_payload(game_init: GameInit) -> Dict[str, Any]:
    return {
        "gameId": game_init.gameId,
        "constraints": [
            {"attribute": c.attribute, "minCount": c.minCount}
            for c in game_init.constraints
        ],
        "attributeStatistics": {
            "relativeFrequencies": dict(game_init.relativeFrequencies),
            "correlations": {a: dict(row) for a, row in game_init.correlations.items()},
        },
    }
