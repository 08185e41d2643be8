"""Orchestration module for reference discovery pipeline coordination."""

from reference_discovery.orchestration.pipeline import ReferencePipeline
from reference_discovery.orchestration.result import PipelineResult

__all__ = [
    "ReferencePipeline",
    "PipelineResult",
]
