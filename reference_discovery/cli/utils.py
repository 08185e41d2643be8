"""Helpers shared by the refdisc commands.

Config and summaries loading, exit-code mapping and colored output. Log
entries go to stderr; everything printed here goes to stdout.
"""

import functools
from pathlib import Path
from typing import Any, Callable, List, TypeVar

import structlog
import typer
import yaml
from pydantic import ValidationError

from reference_discovery.models.config import PipelineConfig
from reference_discovery.models.content import ContentSummary
from reference_discovery.observability.logging import configure_logging
from reference_discovery.services.config_manager import (
    DEFAULT_CONFIG_PATH,
    ConfigManager,
)
from reference_discovery.utils.exceptions import (
    ConfigValidationError,
    InvalidInputError,
)

# Defaults until a config file overrides level and format
configure_logging()
logger = structlog.get_logger()

F = TypeVar("F", bound=Callable)

CONFIG_OPTION_DEFAULT = Path(DEFAULT_CONFIG_PATH)


def load_config(config_path: Path) -> PipelineConfig:
    """Validated pipeline config, or defaults if the file does not exist.

    Also reapplies logging with the configured level and format.

    Raises:
        typer.Exit: Code 1 when the file is unreadable or invalid
    """
    try:
        config = ConfigManager(config_path=str(config_path)).load_or_default()
    except (FileNotFoundError, ConfigValidationError) as e:
        display_error(f"Config error: {e}")
        raise typer.Exit(code=1)

    configure_logging(level=config.log_level, json_output=config.json_logs)
    return config


def load_summaries(path: Path) -> List[ContentSummary]:
    """Read content summaries from a YAML or JSON file.

    The file may hold a single summary mapping, a list of them, or a
    mapping with a `summaries` list.

    Raises:
        InvalidInputError: File missing, unparseable or holding no summaries
    """
    if not path.exists():
        raise InvalidInputError(f"Summaries file not found: {path}")

    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise InvalidInputError(f"Failed to parse summaries file: {e}")

    if isinstance(data, dict):
        data = data.get("summaries", [data])
    if not isinstance(data, list) or not data:
        raise InvalidInputError(f"No content summaries found in {path}")

    try:
        return [ContentSummary(**item) for item in data]
    except (TypeError, ValidationError) as e:
        raise InvalidInputError(f"Invalid content summary: {e}")


def handle_errors(func: F) -> F:
    """Map command failures to exit codes.

    InvalidInputError exits with 2, any other error with 1 after logging
    the traceback. typer.Exit raised by the command passes through.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except InvalidInputError as e:
            typer.secho(f"Invalid input: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=2)
        except Exception as e:
            logger.exception("command_failed")
            typer.secho(f"Error: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    return wrapper  # type: ignore[return-value]


def display_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def display_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def display_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)


def display_info(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)
