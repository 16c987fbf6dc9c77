#!/usr/bin/env python3
"""
Convenience script to run the CLI with simulated API
"""

import subprocess
import sys
import os

def main():
    # Change to the project directory
    os.chdir(os.path.dirname(os.path.abspath(__file__)))

    # Run the CLI against the local simulated server
    cmd = [sys.executable, "-m", "bouncer_cli.cli", "--simulated"] + sys.argv[1:]
    sys.exit(subprocess.run(cmd).returncode)


if __name__ == '__main__':
    main()
