"""Refine command for query analysis.

Reports breadth, validation and refinement suggestions for a query string.
"""

import typer

from reference_discovery.cli.utils import (
    display_info,
    display_success,
    display_warning,
    handle_errors,
)
from reference_discovery.services.query_refiner import QueryRefiner


@handle_errors
def refine_command(
    query: str = typer.Argument(..., help="Search query to analyze"),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON"),
):
    """Analyze a search query and suggest refinements."""
    refinement = QueryRefiner().refine_query(query)

    if as_json:
        typer.echo(refinement.model_dump_json(indent=2))
        return

    breadth = refinement.breadth_analysis
    display_info(
        f"Breadth: {breadth.classification} ({breadth.breadth_score:.2f}), "
        f"{breadth.term_count} terms, {breadth.specificity_level}"
    )
    typer.echo(breadth.reasoning)

    if refinement.validation.is_valid:
        display_success("Query is valid")
    else:
        for issue in refinement.validation.issues:
            display_warning(f"Issue: {issue}")

    for suggestion in breadth.suggestions:
        typer.echo(f"- [{suggestion.priority}] {suggestion.suggestion}")

    if refinement.refined_queries:
        display_info("Refined queries:")
        for refined in refinement.refined_queries:
            typer.echo(f"  ({refined.refinement_type}) {refined.query}")
