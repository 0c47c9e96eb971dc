"""
Entry point for running the ingestion service as a module.

Usage:
    python -m fight_odds sync
    python -m fight_odds run --interval 300
"""

from fight_odds.cli import app

if __name__ == "__main__":
    app()
