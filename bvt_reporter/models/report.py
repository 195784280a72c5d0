"""
Report Data Model
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class Status(str, Enum):
    """Lifecycle and terminal statuses shared by steps, test cases and runs."""

    UNKNOWN = "UNKNOWN"
    STARTED = "STARTED"
    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    UNDEFINED = "UNDEFINED"
    AMBIGUOUS = "AMBIGUOUS"
    PENDING = "PENDING"
    FIXED_BY_AI = "FIXED_BY_AI"


# Statuses that fail a test case without carrying their own message
SYNTHESIZED_FAILURES = (Status.AMBIGUOUS, Status.UNDEFINED, Status.PENDING)


class StepType(str, Enum):
    """Classification of a Gherkin step."""

    UNKNOWN = "Unknown"
    CONTEXT = "Context"
    ACTION = "Action"
    OUTCOME = "Outcome"
    CONJUNCTION = "Conjunction"


class ReportModel(BaseModel):
    """Base for report records; serialized with camelCase keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_payload(self) -> Dict[str, Any]:
        """Dump in the wire shape expected by the collector."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Result(ReportModel):
    """Status with optional timing (epoch ms) and failure message."""

    status: Status = Status.UNKNOWN
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    message: Optional[str] = None


class CommandRecord(ReportModel):
    """A granular sub-action executed inside a step."""

    type: str = ""
    value: Optional[str] = None
    text: str = ""
    screenshot_id: Optional[str] = None
    result: Result = Field(default_factory=lambda: Result(status=Status.PASSED))

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "allow"


class StepRecord(ReportModel):
    """Result of a single scenario step."""

    keyword: str = ""
    type: StepType = StepType.UNKNOWN
    text: str
    commands: List[CommandRecord] = Field(default_factory=list)
    result: Result = Field(default_factory=Result)
    logs: List[Dict[str, Any]] = Field(default_factory=list)
    network_logs: List[Dict[str, Any]] = Field(default_factory=list)
    snapshot_before: Optional[str] = None
    snapshot_after: Optional[str] = None
    trace_file_path: Optional[str] = None


class RetrainStats(ReportModel):
    """Outcome of an automated repair attempt."""

    result: Result = Field(default_factory=Result)
    steps_count: int = 0
    run_id: Optional[str] = None
    retrain_id: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "allow"


class TestCaseRecord(ReportModel):
    """Everything known about one executed scenario."""

    __test__ = False

    id: str
    uri: str
    feature_name: str = ""
    scenario_name: str = ""
    parameters: Dict[str, str] = Field(default_factory=dict)
    steps: List[StepRecord] = Field(default_factory=list)
    result: Result = Field(default_factory=Result)
    logs: List[Dict[str, Any]] = Field(default_factory=list)
    network_logs: List[Dict[str, Any]] = Field(default_factory=list)
    integrations: List[Dict[str, Any]] = Field(default_factory=list)
    log_file_id: Optional[str] = None
    trace_file_id: Optional[str] = None
    retrain_stats: Optional[RetrainStats] = None


class RunEnvironment(ReportModel):
    """Environment the scenarios ran against."""

    name: Optional[str] = None
    base_url: Optional[str] = None


class Report(ReportModel):
    """Complete execution report."""

    result: Result = Field(default_factory=Result)
    test_cases: List[TestCaseRecord] = Field(default_factory=list)
    env: RunEnvironment = Field(default_factory=RunEnvironment)


class RootCause(ReportModel):
    """Failure analysis returned by the collector for a submitted test case."""

    status: bool = True  # True once the failure is considered resolved
    analysis: str = ""
    failed_step: int = 0
    fail_class: str = ""


class DeliveryResult(ReportModel):
    """Collector response to a test case submission."""

    status: bool = False
    root_cause: Optional[RootCause] = None
    report: Optional[Dict[str, Any]] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "allow"


class RunHandle(ReportModel):
    """Identifiers of the remote run document."""

    id: str
    project_id: str


class IssueNote(BaseModel):
    """Failure or warning line for the run summary."""

    scenario_name: str
    uri: str
    status: Status
    message: Optional[str] = None


class RunSummary(BaseModel):
    """Run summary."""

    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    fixed_by_ai: int = 0
    total_steps: int = 0
    step_counts: Dict[str, int] = Field(default_factory=dict)
    duration_ms: Optional[int] = None
    overall_status: Status = Status.UNKNOWN
    failures: List[IssueNote] = Field(default_factory=list)
    warnings: List[IssueNote] = Field(default_factory=list)
    report_link: Optional[str] = None
