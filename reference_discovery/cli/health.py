"""Health command for provider availability checks.

Sends a small query to every enabled provider and reports which answer.
"""

import asyncio
from pathlib import Path

import typer

from reference_discovery.cli.utils import (
    CONFIG_OPTION_DEFAULT,
    display_error,
    display_success,
    handle_errors,
    load_config,
)
from reference_discovery.services.search_client import SearchClient


@handle_errors
def health_command(
    config_path: Path = typer.Option(
        CONFIG_OPTION_DEFAULT, "--config", "-c", help="Path to pipeline config YAML"
    ),
):
    """Check every enabled search provider.

    Exits with code 1 when no provider is healthy.
    """
    config = load_config(config_path)
    client = SearchClient(config.search)

    health = asyncio.run(client.health_check())

    for provider, healthy in health.items():
        if healthy:
            display_success(f"{provider}: healthy")
        else:
            display_error(f"{provider}: unavailable")

    if not any(health.values()):
        raise typer.Exit(code=1)
