"""Storage and repository interfaces"""

from .repository import (
    WorkflowRepository,
    ExecutionRepository,
    InMemoryWorkflowRepository,
    InMemoryExecutionRepository
)

__all__ = [
    "WorkflowRepository",
    "ExecutionRepository",
    "InMemoryWorkflowRepository",
    "InMemoryExecutionRepository"
]
