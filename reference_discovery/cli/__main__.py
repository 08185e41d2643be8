"""CLI entry point.

Allows running the CLI as a module: python -m reference_discovery.cli
"""

from reference_discovery.cli import app

if __name__ == "__main__":
    app()
