"""Structural validation for task graphs.

Runs once, when an executor is constructed. A graph that fails here never
executes a single node.
"""

import logging
from dataclasses import dataclass

from taskgraph.errors import GraphValidationError
from taskgraph.graph.edge import GraphSpec

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of validating a graph."""

    success: bool
    errors: list[str]

    @property
    def error(self) -> str:
        """Get combined error message."""
        return "; ".join(self.errors) if self.errors else ""


def check_graph(graph: GraphSpec) -> ValidationResult:
    """Collect every structural problem without raising."""
    errors = graph.validate()
    return ValidationResult(success=not errors, errors=errors)


def validate_graph(graph: GraphSpec) -> None:
    """
    Fail fast on a malformed graph.

    Raises:
        GraphValidationError: listing every problem found
    """
    result = check_graph(graph)
    if not result.success:
        logger.error(f"✗ Graph '{graph.id}' is invalid: {result.error}")
        raise GraphValidationError(result.errors)
