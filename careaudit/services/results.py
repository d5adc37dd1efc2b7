"""
CareAudit - Workflow Results

Cascading transitions return the updated entity together with every
entity derived from it, so callers and tests see exactly what a
transition produced.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, List, TypeVar


T = TypeVar("T")


@dataclass
class WorkflowResult(Generic[T]):
    """(updated entity, derived entities) produced by one transition."""
    entity: T
    derived: List[Any] = field(default_factory=list)
