"""Models package"""
from .events import Envelope
from .report import (
    CommandRecord,
    DeliveryResult,
    Report,
    Result,
    RetrainStats,
    RootCause,
    RunHandle,
    RunSummary,
    Status,
    StepRecord,
    StepType,
    TestCaseRecord,
)

__all__ = [
    "CommandRecord",
    "DeliveryResult",
    "Envelope",
    "Report",
    "Result",
    "RetrainStats",
    "RootCause",
    "RunHandle",
    "RunSummary",
    "Status",
    "StepRecord",
    "StepType",
    "TestCaseRecord",
]
