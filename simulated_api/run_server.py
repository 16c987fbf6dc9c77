#!/usr/bin/env python3
"""
Script to run the simulated API server for local development.
"""

import argparse
import logging

from simulated_api.server import SimulatedAPIServer


def main():
    parser = argparse.ArgumentParser(description="Run Simulated API Server")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=5000)
    parser.add_argument("--seed", type=int, default=None, help="Seed the person generator for repeatable games")
    parser.add_argument("--debug", action="store_true", help="Run Flask in debug mode")
    parser.add_argument("--quiet", action="store_true", help="Reduce server output and logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING if args.quiet else logging.INFO, format="[%(levelname)s] %(message)s")
    server = SimulatedAPIServer(quiet=args.quiet, seed=args.seed)
    server.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == '__main__':
    main()
