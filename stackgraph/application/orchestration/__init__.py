"""
Application Orchestration Package

Architectural Intent:
- Contains the work graph, its builder and the execution engine
- Dependency-ordered, concurrency-bounded execution of deployment work
"""

from stackgraph.application.orchestration.work_graph import (
    WorkGraph,
    WorkGraphActions,
    Concurrency,
)
from stackgraph.application.orchestration.work_graph_builder import WorkGraphBuilder

__all__ = ["WorkGraph", "WorkGraphActions", "Concurrency", "WorkGraphBuilder"]
