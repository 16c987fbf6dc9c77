from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify, request

from .models import GameRegistry, ScenarioData, SimulationError, game_init_payload


logger = logging.getLogger(__name__)


class SimulatedAPIServer:
    def __init__(self, quiet: bool = False, scenario_data: Optional[ScenarioData] = None, seed: Optional[int] = None):
        self.app = Flask(__name__)
        self.quiet = quiet
        self.registry = GameRegistry(scenario_data, seed=seed)

        # Disable Flask request logging if quiet
        if quiet:
            logging.getLogger('werkzeug').setLevel(logging.ERROR)

        self._setup_routes()

    def _setup_routes(self):
        @self.app.errorhandler(SimulationError)
        def simulation_error(e: SimulationError):
            return jsonify({"error": e.message}), e.status_code

        @self.app.route('/new-game', methods=['GET'])
        def new_game():
            try:
                scenario = int(request.args.get('scenario', ''))
            except ValueError:
                return jsonify({"error": "Invalid scenario"}), 400
            player_id = request.args.get('playerId', '')

            game_init = self.registry.new_game(scenario, player_id)
            logger.info("New game %s for player %s (scenario %d)", game_init.gameId, player_id, scenario)
            return jsonify(game_init_payload(game_init))

        @self.app.route('/api/game/<game_id>', methods=['GET'])
        def game_status(game_id: str):
            return jsonify(self.registry.get(game_id).status_payload())

        @self.app.route('/decide-and-next', methods=['GET'])
        def decide_and_next():
            game = self.registry.get(request.args.get('gameId'))
            try:
                person_index = int(request.args.get('personIndex', ''))
            except ValueError:
                return jsonify({"error": "Invalid person index"}), 400
            accept_str = request.args.get('accept')
            accept = accept_str.lower() == 'true' if accept_str else None

            response = game.decide_and_next(person_index, accept)
            if response["status"] != "running":
                logger.info("Game %s ended: %s", game.game_id, response["status"])
            return jsonify(response)

    def run(self, host: str = 'localhost', port: int = 5000, debug: bool = False):
        """Run the simulated API server"""
        if not self.quiet:
            print(f"Starting simulated API server on http://{host}:{port}")
        self.app.run(host=host, port=port, debug=debug and not self.quiet)
