from __future__ import annotations

import argparse
import logging
import threading
from typing import Callable, Optional

from .api_client import ApiClient
from .config import SIMULATED_BASE_URL, ClientConfig
from .errors import GatewayError
from .lifecycle import ClientView, GameClient, Mode
from .views import render, render_created


logger = logging.getLogger(__name__)

Reader = Callable[[str], str]
Writer = Callable[[str], None]


def wait_settled(client: GameClient, timeout: Optional[float] = None) -> ClientView:
    """Block until no gateway call is in flight for the active session."""
    settled = threading.Event()

    def on_change(view: ClientView) -> None:
        if view.sequencer is None or not view.sequencer.in_flight:
            settled.set()

    unsubscribe = client.subscribe(on_change)
    try:
        on_change(client.view())
        settled.wait(timeout)
    finally:
        unsubscribe()
    return client.view()


def play(client: GameClient, read: Reader = input, write: Writer = print) -> bool:
    """Interactive loop for the active game. Returns False when the user quits."""
    while True:
        view = wait_settled(client)
        write(render(view))
        state = view.sequencer
        if state is None:
            return True

        if state.phase.terminal:
            read("Press Enter to start a new game ")
            client.back()
            return True

        choice = read("[a]ccept  [r]eject  [t] retry  [s] refresh  [b]ack  [q]uit > ").strip().lower()
        if choice in ("a", "accept"):
            future = client.accept()
        elif choice in ("r", "reject"):
            future = client.reject()
        elif choice in ("t", "retry"):
            future = client.retry()
        elif choice in ("s", "status"):
            client.refresh_status()
            continue
        elif choice in ("b", "back"):
            client.back()
            return True
        elif choice in ("q", "quit"):
            client.back()
            return False
        else:
            write(f"Unknown command: {choice!r}")
            continue

        if future is None:
            write("Nothing to do right now")
            continue
        future.result()


def setup(client: GameClient, config: ClientConfig, read: Reader = input, write: Writer = print) -> bool:
    """Mode selector. Returns False when the user quits, True once a game is active."""
    while True:
        mode = client.view().mode
        write(f"\nMode: {mode.value}")
        choice = read("[c]reate new game  [j]oin existing game  [q]uit > ").strip().lower()
        if choice in ("q", "quit"):
            return False
        if choice in ("c", "create"):
            client.select_mode(Mode.CREATE)
            player_id = read(f"Player UUID [{config.player_id}]: ").strip() or config.player_id
            scenario = read("Scenario (1, 2 or 3): ").strip()
            write("Creating game...")
            try:
                game = client.create_game(player_id, scenario)
            except GatewayError as e:
                write(f"Error: {e}")
                continue
            write(render_created(game))
            return True
        if choice in ("j", "join"):
            client.select_mode(Mode.JOIN)
            game_id = read("Game UUID: ").strip()
            write("Joining game...")
            try:
                client.join_game(game_id)
            except GatewayError as e:
                write(f"Error: {e}")
                continue
            write("Game found!")
            return True
        write(f"Unknown command: {choice!r}")


def run(client: GameClient, config: ClientConfig, scenario: Optional[int] = None, join: Optional[str] = None,
        read: Reader = input, write: Writer = print) -> None:
    try:
        if scenario is not None:
            write(render_created(client.create_game(config.player_id, scenario)))
        elif join is not None:
            client.join_game(join)
    except GatewayError as e:
        write(f"Error: {e}")

    try:
        while True:
            if client.view().mode is not Mode.PLAYING and not setup(client, config, read, write):
                return
            if not play(client, read, write):
                return
    finally:
        client.close()


def build_gateway(config: ClientConfig, embedded: bool = False, seed: Optional[int] = None):
    if embedded:
        from .embedded_api_client import EmbeddedApiClient
        return EmbeddedApiClient(seed=seed)
    return ApiClient(
        config.base_url,
        timeout=config.timeout,
        status_retries=config.status_retries,
        retry_delay=config.retry_delay,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Berghain Bouncer interactive client")
    parser.add_argument("--scenario", type=int, choices=[1, 2, 3], help="Create a game for this scenario right away")
    parser.add_argument("--join", metavar="GAME_ID", help="Join an existing game right away")
    parser.add_argument("--player-id", help="Player UUID used when creating games")
    parser.add_argument("--base-url", help="Game service URL")
    parser.add_argument("--simulated", action="store_true", help="Use the local simulated API server")
    parser.add_argument("--embedded", action="store_true", help="Play against an in-process simulation")
    parser.add_argument("--seed", type=int, help="Seed for the embedded simulation")
    parser.add_argument("--poll-interval", type=float, help="Seconds between status refreshes")
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds (default: none)")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings and errors")
    args = parser.parse_args()

    level = logging.DEBUG if args.debug else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")

    config = ClientConfig.from_env().with_overrides(
        base_url=SIMULATED_BASE_URL if args.simulated else args.base_url,
        player_id=args.player_id,
        poll_interval=args.poll_interval,
        timeout=args.timeout,
    )
    if args.embedded:
        logger.info("Using embedded simulation")
    else:
        logger.info("Using game service at %s", config.base_url)

    client = GameClient(build_gateway(config, embedded=args.embedded, seed=args.seed), poll_interval=config.poll_interval)
    try:
        run(client, config, scenario=args.scenario, join=args.join)
    except (KeyboardInterrupt, EOFError):
        print()


if __name__ == "__main__":
    main()
