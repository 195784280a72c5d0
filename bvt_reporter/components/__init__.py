"""Components package"""
from .base_component import BaseComponent
from .lookup_tables import LookupTables, ProtocolViolationError
from .side_channel import SideChannelCollector
from .run_context import RunContext
from .aggregator import EventAggregator
from .collaborators import RepairCollaborator, RerunCollaborator
from .orchestrator import RecoveryOrchestrator, RecoveryState

__all__ = [
    "BaseComponent",
    "LookupTables",
    "ProtocolViolationError",
    "SideChannelCollector",
    "RunContext",
    "EventAggregator",
    "RepairCollaborator",
    "RerunCollaborator",
    "RecoveryOrchestrator",
    "RecoveryState",
]
