from __future__ import annotations

from typing import List

from .lifecycle import ClientView
from .models import GameInit, PersonOffer, StatusSnapshot
from .sequencer import Phase


def render_created(game: GameInit) -> str:
    lines = [f"Game created: {game.gameId}", "", "Constraints:"]
    for c in game.constraints:
        lines.append(f"  {c.attribute}: minimum {c.minCount}")
    lines.append("Relative frequencies:")
    for attr, freq in game.relativeFrequencies.items():
        lines.append(f"  {attr}: {freq * 100:.2f}%")
    lines.append("Correlations:")
    for attr, row in game.correlations.items():
        others = ", ".join(f"{other} {value:+.4f}" for other, value in row.items() if other != attr)
        lines.append(f"  {attr}: {others}")
    return "\n".join(lines)


def render_status(status: StatusSnapshot) -> str:
    g = status.game
    lines = [
        f"Player: {g.playerName}  Scenario: {g.scenario}  Level: {g.level}  Status: {g.status}  Persons: {g.personCount}",
        f"Admitted: {g.admitted}  Rejected: {g.rejected}  "
        f"Capacity: {status.capacity_progress * 100:.1f}%  "
        f"Acceptance rate: {status.acceptance_rate * 100:.1f}%  "
        f"Rejections until limit: {status.rejections_until_limit}",
    ]
    if status.metrics.isNearRejectionLimit:
        lines.append("[!] Close to the rejection limit")
    lines.append("Constraints:")
    for c in status.constraints:
        mark = " ✓" if c.isComplete else ""
        if c.isOverTarget:
            mark += " ⚠"
        lines.append(f"  {c.label}: {c.current}/{c.target} ({c.percentage:.1f}%){mark}")
    return "\n".join(lines)


def render_offer(offer: PersonOffer) -> str:
    lines = [f"Person #{offer.personIndex}"]
    for attr, has_attr in offer.attributes.items():
        lines.append(f"  {attr}: {'✓' if has_attr else '✗'}")
    return "\n".join(lines)


def render(view: ClientView) -> str:
    """Text for the whole play screen."""
    state = view.sequencer
    if state is None:
        return "No active game"

    out: List[str] = [f"=== Game {view.game_id} ==="]

    if state.phase is Phase.COMPLETED:
        out += ["Game Completed!", f"Admitted: {state.admitted}", f"Rejected: {state.rejected}"]
        return "\n".join(out)
    if state.phase is Phase.FAILED:
        reason = state.outcome.reason if state.outcome is not None else "unknown"
        out += ["Game Failed", f"Reason: {reason}", f"Rejected: {state.rejected}"]
        return "\n".join(out)

    if view.status is not None:
        out.append(render_status(view.status))
    elif view.status_error is not None:
        out.append(f"Error loading game status: {view.status_error}")
    else:
        out.append("Loading status...")

    if state.offer is not None:
        out.append(render_offer(state.offer))
        out.append(f"Current decision - Admitted: {state.admitted}  Rejected: {state.rejected}")
    if state.in_flight:
        out.append("Making decision..." if state.phase is Phase.SUBMITTING else "Loading...")
    if state.error is not None:
        out.append(f"Error: {state.error}  (press t to retry)")
    return "\n".join(out)
