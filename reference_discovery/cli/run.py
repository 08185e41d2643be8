"""Run command for the reference discovery pipeline.

Handles pipeline execution and result display.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from reference_discovery.cli.utils import (
    CONFIG_OPTION_DEFAULT,
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_config,
    load_summaries,
)
from reference_discovery.models.search import SearchContext
from reference_discovery.orchestration import PipelineResult, ReferencePipeline


@handle_errors
def run_command(
    summaries_path: Path = typer.Argument(
        ..., help="YAML or JSON file with one or more content summaries"
    ),
    config_path: Path = typer.Option(
        CONFIG_OPTION_DEFAULT,
        "--config",
        "-c",
        help="Path to pipeline config YAML (defaults apply when absent)",
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write ranked references as JSON"
    ),
    max_results: Optional[int] = typer.Option(
        None, "--max-results", "-n", min=1, max=100, help="Results per provider"
    ),
    top: int = typer.Option(10, "--top", help="References to display"),
    include_alternatives: bool = typer.Option(
        False,
        "--include-alternatives",
        help="Also search one query per summary",
    ),
    request_id: Optional[str] = typer.Option(
        None, "--request-id", help="Correlation id for log entries"
    ),
):
    """Discover and rank references for the given content summaries."""
    config = load_config(config_path)
    summaries = load_summaries(summaries_path)

    query_options = config.query
    if include_alternatives:
        query_options = query_options.model_copy(update={"include_alternatives": True})
    search_options = config.search_options
    if max_results is not None:
        search_options = search_options.model_copy(update={"max_results": max_results})

    display_info(f"Searching references for {len(summaries)} summaries...")

    pipeline = ReferencePipeline(config)
    result = asyncio.run(
        pipeline.run(
            summaries,
            options=query_options,
            search_options=search_options,
            context=SearchContext(request_id=request_id),
        )
    )

    _display_results(result, top)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        display_success(f"Results written to {output}")


def _display_results(result: PipelineResult, top: int) -> None:
    """Display pipeline results.

    Args:
        result: Pipeline execution result.
        top: Number of ranked references to print.
    """
    for query in result.queries:
        typer.echo(f"Query [{query.query_type}]: {query.query}")

    if result.degraded:
        display_warning("All providers failed; showing degraded-mode guidance.")
    for provider, error in result.provider_errors.items():
        display_warning(f"  {provider}: {error}")

    display_success(
        f"{result.raw_result_count} results found, "
        f"{result.merged_result_count} after deduplication"
    )
    if result.providers_used:
        typer.echo(f"Providers: {', '.join(result.providers_used)}")

    for ranked in result.results[:top]:
        authors = ", ".join(ranked.authors[:3])
        if len(ranked.authors) > 3:
            authors += " et al."
        year = f" ({ranked.year})" if ranked.year else ""
        score = f"[{ranked.overall_score:.2f}]"
        typer.echo(f"{ranked.rank:>3}. {score} {ranked.title}{year}")
        typer.echo(f"     {authors}")
        if ranked.doi:
            typer.echo(f"     doi:{ranked.doi}")
