"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the scheduler needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from stackgraph.domain.ports.event_bus_port import EventBusPort
from stackgraph.domain.ports.work_graph_actions_port import WorkGraphActionsPort
from stackgraph.domain.ports.assembly_reader_port import AssemblyReaderPort

__all__ = [
    "EventBusPort",
    "WorkGraphActionsPort",
    "AssemblyReaderPort",
]
