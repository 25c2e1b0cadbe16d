"""
Convenience entry point for running slotguard directly.

Usage: python -m slotguard [command] [options]
"""

from slotguard.cli.app import app

if __name__ == "__main__":
    app()
