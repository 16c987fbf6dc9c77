from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import TransportError


AttributeId = str


@dataclass(frozen=True)
class Constraint:
    attribute: AttributeId
    minCount: int


@dataclass(frozen=True)
class GameInit:
    gameId: str
    constraints: List[Constraint]
    relativeFrequencies: Mapping[AttributeId, float]
    correlations: Mapping[AttributeId, Mapping[AttributeId, float]]


@dataclass(frozen=True)
class PersonOffer:
    personIndex: int
    attributes: Mapping[AttributeId, bool]


@dataclass(frozen=True)
class Running:
    nextPerson: PersonOffer
    admittedCount: int
    rejectedCount: int


@dataclass(frozen=True)
class Completed:
    admittedCount: int
    rejectedCount: int
    admittedAttributes: Optional[Dict[AttributeId, int]] = None


@dataclass(frozen=True)
class Failed:
    reason: str
    rejectedCount: int
    admittedAttributes: Optional[Dict[AttributeId, int]] = None


DecisionOutcome = Union[Running, Completed, Failed]


@dataclass(frozen=True)
class GameSummary:
    gameId: str
    playerName: str = ""
    level: int = 0
    scenario: str = ""
    status: str = "running"
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    finalScore: Optional[int] = None
    admitted: int = 0
    rejected: int = 0
    personCount: int = 0


@dataclass(frozen=True)
class ConstraintProgress:
    attribute: AttributeId
    label: str
    current: int
    target: int
    percentage: float
    isComplete: bool
    isOverTarget: bool


@dataclass(frozen=True)
class StatusMetrics:
    capacityProgress: float = 0.0
    acceptanceRate: float = 0.0
    rejectionProgress: float = 0.0
    rejectionsUntilLimit: int = 0
    isNearRejectionLimit: bool = False


@dataclass(frozen=True)
class StatusSnapshot:
    """Server-side view of a game. Informational only, never drives the cursor."""

    game: GameSummary
    constraints: Tuple[ConstraintProgress, ...]
    metrics: StatusMetrics
    occupancy: Mapping[str, Any] = field(default_factory=dict)
    lastUpdated: Optional[str] = None

    @property
    def gameId(self) -> str:
        return self.game.gameId

    @property
    def admitted(self) -> int:
        return self.game.admitted

    @property
    def rejected(self) -> int:
        return self.game.rejected

    @property
    def capacity_progress(self) -> float:
        return self.metrics.capacityProgress

    @property
    def acceptance_rate(self) -> float:
        return self.metrics.acceptanceRate

    @property
    def rejections_until_limit(self) -> int:
        return self.metrics.rejectionsUntilLimit


def _require_object(data: Any, what: str) -> None:
    if not isinstance(data, Mapping):
        raise TransportError(f"Malformed {what} response: expected an object, got {type(data).__name__}")


def parse_game_init(data: Mapping[str, Any]) -> GameInit:
    _require_object(data, "new-game")
    try:
        constraints = [Constraint(attribute=c["attribute"], minCount=int(c["minCount"])) for c in data["constraints"]]
        stats = data["attributeStatistics"]
        return GameInit(
            gameId=data["gameId"],
            constraints=constraints,
            relativeFrequencies=dict(stats["relativeFrequencies"]),
            correlations={a: dict(row) for a, row in stats["correlations"].items()},
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise TransportError(f"Malformed new-game response: {e!r}") from e


def parse_person(data: Mapping[str, Any]) -> PersonOffer:
    attributes = {str(k): bool(v) for k, v in data["attributes"].items()}
    return PersonOffer(personIndex=int(data["personIndex"]), attributes=attributes)


def parse_outcome(data: Mapping[str, Any]) -> DecisionOutcome:
    """Turn a decide-and-next payload into a Running/Completed/Failed value."""
    _require_object(data, "decide-and-next")
    status = data.get("status")
    try:
        if status == "running":
            np = data.get("nextPerson")
            if np is None:
                raise TransportError("Malformed decide-and-next response: running without nextPerson")
            return Running(
                nextPerson=parse_person(np),
                admittedCount=int(data.get("admittedCount") or 0),
                rejectedCount=int(data.get("rejectedCount") or 0),
            )
        if status == "completed":
            return Completed(
                admittedCount=int(data.get("admittedCount") or 0),
                rejectedCount=int(data.get("rejectedCount") or 0),
                admittedAttributes=data.get("admittedAttributes"),
            )
        if status == "failed":
            return Failed(
                reason=data.get("reason") or "unknown",
                rejectedCount=int(data.get("rejectedCount") or 0),
                admittedAttributes=data.get("admittedAttributes"),
            )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise TransportError(f"Malformed decide-and-next response: {e!r}") from e
    raise TransportError(f"Unexpected game status: {status!r}")


def parse_status(data: Mapping[str, Any]) -> StatusSnapshot:
    _require_object(data, "game status")
    try:
        g = data["game"]
        game = GameSummary(
            gameId=g["gameId"],
            playerName=g.get("playerName") or "",
            level=int(g.get("level") or 0),
            scenario=str(g.get("scenario") or ""),
            status=g.get("status") or "running",
            startTime=g.get("startTime"),
            endTime=g.get("endTime"),
            finalScore=g.get("finalScore"),
            admitted=int(g.get("admitted") or 0),
            rejected=int(g.get("rejected") or 0),
            personCount=int(g.get("personCount") or 0),
        )
        constraints = tuple(
            ConstraintProgress(
                attribute=c["attribute"],
                label=c.get("label") or c["attribute"],
                current=int(c["current"]),
                target=int(c["target"]),
                percentage=float(c.get("percentage") or 0.0),
                isComplete=bool(c.get("isComplete")),
                isOverTarget=bool(c.get("isOverTarget")),
            )
            for c in data.get("constraints") or []
        )
        m = data.get("metrics") or {}
        metrics = StatusMetrics(
            capacityProgress=float(m.get("capacityProgress") or 0.0),
            acceptanceRate=float(m.get("acceptanceRate") or 0.0),
            rejectionProgress=float(m.get("rejectionProgress") or 0.0),
            rejectionsUntilLimit=int(m.get("rejectionsUntilLimit") or 0),
            isNearRejectionLimit=bool(m.get("isNearRejectionLimit")),
        )
        occupancy = dict(data.get("occupancy") or {})
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise TransportError(f"Malformed game status response: {e!r}") from e
    return StatusSnapshot(
        game=game,
        constraints=constraints,
        metrics=metrics,
        occupancy=occupancy,
        lastUpdated=data.get("lastUpdated"),
    )
