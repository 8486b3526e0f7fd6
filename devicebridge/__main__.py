"""
Entry point for running devicebridge as a module: python -m devicebridge
"""

from devicebridge.cli.commands import app

if __name__ == "__main__":
    app()
