"""QA validation module for rollup output and arsenal configuration."""

from .validator import (
    ConsistencyValidator,
    Issue,
    QAResult,
    validate_arsenal,
)

__all__ = [
    "ConsistencyValidator",
    "Issue",
    "QAResult",
    "validate_arsenal",
]
