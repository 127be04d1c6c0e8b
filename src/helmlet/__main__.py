"""Entry point for running helmlet as a module.

Usage:
    python -m helmlet [command] [options]

Example:
    python -m helmlet render --set replicaCount=3
    python -m helmlet lint ./charts/pleco
"""

from helmlet.cli import app

if __name__ == "__main__":
    app()
