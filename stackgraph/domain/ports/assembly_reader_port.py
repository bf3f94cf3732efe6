"""
Assembly Reader Port

Architectural Intent:
- Abstract interface for turning a synthesized assembly directory into
  the artifact tree the graph builder consumes
"""

from typing import Protocol, runtime_checkable

from stackgraph.domain.entities.artifacts import CloudArtifact


@runtime_checkable
class AssemblyReaderPort(Protocol):
    def read(self, directory: str) -> list[CloudArtifact]: ...
