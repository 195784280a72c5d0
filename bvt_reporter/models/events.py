"""
Execution Event Data Model

Envelopes follow the Cucumber messages wire format: each envelope is a JSON
object with exactly one populated message variant.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel


class MessageModel(BaseModel):
    """Base for wire messages (camelCase keys, unknown keys ignored)."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"


class Timestamp(MessageModel):
    seconds: int = 0
    nanos: int = 0

    def to_millis(self) -> float:
        return self.seconds * 1000 + self.nanos / 1_000_000


class SourceReference(MessageModel):
    uri: Optional[str] = None


class ParseError(MessageModel):
    message: str
    source: Optional[SourceReference] = None


class DocumentStep(MessageModel):
    id: str
    keyword: str = ""
    keyword_type: Optional[str] = None
    text: str = ""


class TableCell(MessageModel):
    value: str = ""


class TableRow(MessageModel):
    id: str = ""
    cells: List[TableCell] = Field(default_factory=list)


class Examples(MessageModel):
    id: str = ""
    name: str = ""
    table_header: Optional[TableRow] = None
    table_body: List[TableRow] = Field(default_factory=list)


class Scenario(MessageModel):
    id: str
    name: str = ""
    keyword: str = ""
    steps: List[DocumentStep] = Field(default_factory=list)
    examples: List[Examples] = Field(default_factory=list)


class Background(MessageModel):
    id: str = ""
    steps: List[DocumentStep] = Field(default_factory=list)


class RuleChild(MessageModel):
    background: Optional[Background] = None
    scenario: Optional[Scenario] = None


class Rule(MessageModel):
    id: str = ""
    name: str = ""
    children: List[RuleChild] = Field(default_factory=list)


class FeatureChild(MessageModel):
    background: Optional[Background] = None
    scenario: Optional[Scenario] = None
    rule: Optional[Rule] = None


class Feature(MessageModel):
    name: str = ""
    keyword: str = ""
    children: List[FeatureChild] = Field(default_factory=list)


class GherkinDocument(MessageModel):
    uri: str
    feature: Optional[Feature] = None


class PickleStep(MessageModel):
    id: str
    text: str = ""
    type: Optional[str] = None
    ast_node_ids: List[str] = Field(default_factory=list)


class Pickle(MessageModel):
    id: str
    uri: str
    name: str = ""
    ast_node_ids: List[str] = Field(default_factory=list)
    steps: List[PickleStep] = Field(default_factory=list)


class TestStep(MessageModel):
    __test__ = False

    id: str
    pickle_step_id: Optional[str] = None
    hook_id: Optional[str] = None


class TestCase(MessageModel):
    __test__ = False

    id: str
    pickle_id: str
    test_steps: List[TestStep] = Field(default_factory=list)


class TestCaseStarted(MessageModel):
    __test__ = False

    id: str
    test_case_id: str
    timestamp: Timestamp = Field(default_factory=Timestamp)
    attempt: int = 0


class TestStepStarted(MessageModel):
    __test__ = False

    test_case_started_id: str
    test_step_id: str
    timestamp: Timestamp = Field(default_factory=Timestamp)


class Attachment(MessageModel):
    body: str = ""
    media_type: str = ""
    content_encoding: Optional[str] = None
    file_name: Optional[str] = None
    test_case_started_id: Optional[str] = None
    test_step_id: Optional[str] = None


class TestStepResult(MessageModel):
    __test__ = False

    status: str = "UNKNOWN"
    message: Optional[str] = None


class TestStepFinished(MessageModel):
    __test__ = False

    test_case_started_id: str
    test_step_id: str
    test_step_result: TestStepResult = Field(default_factory=TestStepResult)
    timestamp: Timestamp = Field(default_factory=Timestamp)


class TestCaseFinished(MessageModel):
    __test__ = False

    test_case_started_id: str
    timestamp: Timestamp = Field(default_factory=Timestamp)
    will_be_retried: bool = False


class TestRunStarted(MessageModel):
    __test__ = False

    timestamp: Timestamp = Field(default_factory=Timestamp)


class TestRunFinished(MessageModel):
    __test__ = False

    timestamp: Timestamp = Field(default_factory=Timestamp)
    success: bool = False
    message: Optional[str] = None


class Meta(MessageModel):
    run_name: Optional[str] = None


# Envelope field names, in the order lifecycle events normally arrive
EVENT_KINDS = (
    "meta",
    "parse_error",
    "gherkin_document",
    "pickle",
    "test_run_started",
    "test_case",
    "test_case_started",
    "test_step_started",
    "attachment",
    "test_step_finished",
    "test_case_finished",
    "test_run_finished",
)


class Envelope(MessageModel):
    """One event of the execution stream."""

    meta: Optional[Meta] = None
    parse_error: Optional[ParseError] = None
    gherkin_document: Optional[GherkinDocument] = None
    pickle: Optional[Pickle] = None
    test_run_started: Optional[TestRunStarted] = None
    test_case: Optional[TestCase] = None
    test_case_started: Optional[TestCaseStarted] = None
    test_step_started: Optional[TestStepStarted] = None
    attachment: Optional[Attachment] = None
    test_step_finished: Optional[TestStepFinished] = None
    test_case_finished: Optional[TestCaseFinished] = None
    test_run_finished: Optional[TestRunFinished] = None

    @model_validator(mode="after")
    def _single_variant(self) -> "Envelope":
        populated = [kind for kind in EVENT_KINDS if getattr(self, kind) is not None]
        if len(populated) > 1:
            raise ValueError(f"envelope carries more than one message: {populated}")
        return self

    @property
    def kind(self) -> Optional[str]:
        """Name of the populated variant, or None for ignored message types."""
        for kind in EVENT_KINDS:
            if getattr(self, kind) is not None:
                return kind
        return None

    @property
    def payload(self) -> Any:
        kind = self.kind
        return getattr(self, kind) if kind else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Envelope":
        return cls.model_validate(data)
