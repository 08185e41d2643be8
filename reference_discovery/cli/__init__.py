"""Reference Discovery CLI Package.

Provides command-line interface for the academic reference discovery
pipeline.

Usage:
    python -m reference_discovery.cli run summaries.yaml --output refs.json
    python -m reference_discovery.cli refine '"machine learning" AND health'
    python -m reference_discovery.cli validate config/pipeline_config.yaml
    python -m reference_discovery.cli health
"""

import typer

from reference_discovery.cli.health import health_command
from reference_discovery.cli.refine import refine_command
from reference_discovery.cli.run import run_command
from reference_discovery.cli.validate import validate_command

# Create main app
app = typer.Typer(help="Academic reference discovery from content summaries")

# Register individual commands
app.command(name="run")(run_command)
app.command(name="refine")(refine_command)
app.command(name="validate")(validate_command)
app.command(name="health")(health_command)

__all__ = [
    "app",
    "run_command",
    "refine_command",
    "validate_command",
    "health_command",
]
