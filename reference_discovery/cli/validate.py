"""Validate command for configuration files.

Validates configuration file syntax and semantics.
"""

from pathlib import Path

import typer

from reference_discovery.cli.utils import display_error, display_success, handle_errors
from reference_discovery.services.config_manager import ConfigManager
from reference_discovery.utils.exceptions import ConfigValidationError


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(..., help="Config file to validate"),
):
    """Validate configuration file syntax and semantics."""
    try:
        manager = ConfigManager(config_path=str(config_path))
        config = manager.load_config()
    except (FileNotFoundError, ConfigValidationError) as e:
        display_error(f"Validation failed: {e}")
        raise typer.Exit(code=1)

    enabled = [p.value for p, s in config.search.providers.items() if s.enabled]
    display_success("Configuration is valid!")
    typer.echo(f"Enabled providers: {', '.join(enabled) or 'none'}")
