"""
Event Aggregator - Folds the flat message stream into a nested execution report
"""
import asyncio
import base64
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError

from .base_component import BaseComponent
from .lookup_tables import LookupTables, ProtocolViolationError
from .parameters import (
    compute_parameters,
    has_template,
    load_test_data,
    redact_parameters,
    redact_value,
    resolve_template,
)
from .run_context import RunContext
from .side_channel import SideChannelCollector
from ..config import Settings
from ..delivery.artifacts import ArtifactStore, write_local_report
from ..models.events import (
    Attachment,
    Envelope,
    GherkinDocument,
    Meta,
    ParseError,
    Pickle,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestRunFinished,
    TestRunStarted,
    TestStep,
    TestStepFinished,
    TestStepStarted,
)
from ..models.report import (
    SYNTHESIZED_FAILURES,
    CommandRecord,
    Report,
    Result,
    RunEnvironment,
    Status,
    StepRecord,
    StepType,
    TestCaseRecord,
)
from ..utils.helpers import now_millis

UNDEFINED_COMMAND_TYPE = "undefined"

# Skipped once a ParseError has failed the run
CASE_LEVEL_KINDS = (
    "test_case_started",
    "test_step_started",
    "attachment",
    "test_step_finished",
    "test_case_finished",
)


class CaseState:
    """Working state of one test case run between start and finish."""

    def __init__(self, record: TestCaseRecord, steps: Dict[str, StepRecord], raw_parameters: Dict[str, str]):
        self.record = record
        self.steps = steps
        self.raw_parameters = raw_parameters
        self.undefined_reported: Set[str] = set()


class EventAggregator(BaseComponent):
    """
    Consumes envelopes one at a time and maintains the Report.

    Delivery is handed to the pipeline as a scheduled task so handling
    itself never waits on the network.
    """

    def __init__(self, context: RunContext, pipeline=None, config: Settings = None):
        """
        Initialize the aggregator.

        Args:
            context: Run context shared with delivery and recovery
            pipeline: Delivery pipeline; None keeps records in memory only
            config: Settings instance
        """
        super().__init__(
            name="EventAggregator",
            description="Builds the execution report from message envelopes",
            config=config,
        )
        self.context = context
        self.pipeline = pipeline
        self.report = Report()
        self.tables = LookupTables()
        self.side_channel = SideChannelCollector(self.settings.MAX_LOG_ENTRIES)
        self.records: Dict[str, TestCaseRecord] = {}
        self._cases: Dict[str, CaseState] = {}
        self.parse_failed = False

    def handle(self, envelope: Envelope) -> Optional[asyncio.Task]:
        """
        Apply one envelope to the report.

        Args:
            envelope: Parsed message envelope

        Returns:
            The delivery task scheduled by this event, if any

        Raises:
            ProtocolViolationError: The stream referenced an unknown id
        """
        kind = envelope.kind
        if kind is None:
            return None
        if self.parse_failed and kind in CASE_LEVEL_KINDS:
            self.log_debug(f"Ignoring {kind} after parse error")
            return None
        handler = getattr(self, f"_on_{kind}")
        return handler(envelope.payload)

    # Structure

    def _on_meta(self, meta: Meta):
        if meta.run_name and not self.context.run_name:
            self.context.run_name = meta.run_name

    def _on_parse_error(self, parse_error: ParseError):
        timestamp = now_millis()
        self.report.result = Result(
            status=Status.FAILED,
            start_time=timestamp,
            end_time=timestamp,
            message=parse_error.message,
        )
        self.parse_failed = True
        self.log_error(f"Parse error: {parse_error.message}")

    def _on_gherkin_document(self, document: GherkinDocument):
        self.tables.add_document(document)

    def _on_pickle(self, pickle: Pickle):
        self.tables.add_pickle(pickle)

    def _on_test_case(self, test_case: TestCase):
        self.tables.add_test_case(test_case)

    # Run lifecycle

    def _on_test_run_started(self, event: TestRunStarted) -> Optional[asyncio.Task]:
        if not self.parse_failed:
            self.report.result = Result(status=Status.STARTED, start_time=event.timestamp.to_millis())
        return self._schedule_status("running")

    def _on_test_run_finished(self, event: TestRunFinished) -> Optional[asyncio.Task]:
        if self.parse_failed:
            # The parse error stays the run's final result
            return self._schedule_status("completed")
        self.report.result = Result(
            status=Status.PASSED if event.success else Status.FAILED,
            start_time=self.report.result.start_time,
            end_time=event.timestamp.to_millis(),
            message=event.message,
        )
        return self._schedule_status("completed")

    def _schedule_status(self, status: str) -> Optional[asyncio.Task]:
        if self.pipeline is None:
            return None
        return self.pipeline.schedule_status(status)

    # Test cases

    def _on_test_case_started(self, event: TestCaseStarted):
        test_case = self.tables.require_test_case(event.test_case_id)
        pickle = self.tables.require_pickle(test_case.pickle_id)
        document = self.tables.require_document(pickle.uri)

        scenario = self.tables.require_scenario(pickle.ast_node_ids[0]) if pickle.ast_node_ids else None
        raw_parameters = compute_parameters(pickle, scenario)

        steps: Dict[str, StepRecord] = {}
        for pickle_step in pickle.steps:
            document_step = None
            if pickle_step.ast_node_ids:
                document_step = self.tables.find_document_step(pickle_step.ast_node_ids[0])
            classification = document_step.keyword_type if document_step else pickle_step.type
            steps[pickle_step.id] = StepRecord(
                keyword=document_step.keyword.strip() if document_step else "",
                type=_step_type(classification),
                text=pickle_step.text,
            )

        record = TestCaseRecord(
            id=event.id,
            uri=pickle.uri,
            feature_name=document.feature.name if document.feature else "",
            scenario_name=pickle.name,
            parameters=redact_parameters(raw_parameters),
            steps=list(steps.values()),
            result=Result(status=Status.STARTED, start_time=event.timestamp.to_millis()),
        )
        self._cases[event.id] = CaseState(record, steps, raw_parameters)
        self.records[event.id] = record
        self.report.test_cases.append(record)
        self.side_channel.begin_case()
        self.log_debug(f"Test case started: {pickle.name}")

    def _case(self, test_case_started_id: str) -> CaseState:
        state = self._cases.get(test_case_started_id)
        if state is None:
            raise ProtocolViolationError("testCaseStarted", test_case_started_id)
        return state

    def _step(self, state: CaseState, test_step: TestStep) -> StepRecord:
        pickle_step = self.tables.require_pickle_step(test_step.pickle_step_id)
        step = state.steps.get(pickle_step.id)
        if step is None:
            # Known step, but compiled for another test case
            raise ProtocolViolationError(f"pickleStep of {state.record.id}", pickle_step.id)
        return step

    def _on_test_step_started(self, event: TestStepStarted):
        test_step = self.tables.require_test_step(event.test_step_id)
        if test_step.pickle_step_id is None:
            return
        step = self._step(self._case(event.test_case_started_id), test_step)
        step.result = Result(status=Status.STARTED, start_time=event.timestamp.to_millis())

    def _on_test_step_finished(self, event: TestStepFinished):
        test_step = self.tables.require_test_step(event.test_step_id)
        if test_step.pickle_step_id is None:
            return
        state = self._case(event.test_case_started_id)
        step = self._step(state, test_step)

        failed_command = next(
            (command for command in step.commands if command.result.status == Status.FAILED),
            None,
        )
        if failed_command is not None:
            status, message = Status.FAILED, failed_command.result.message
        else:
            status, message = _status(event.test_step_result.status), event.test_step_result.message
        step.result = Result(
            status=status,
            start_time=step.result.start_time,
            end_time=event.timestamp.to_millis(),
            message=message,
        )

        if status == Status.UNDEFINED and test_step.pickle_step_id not in state.undefined_reported:
            state.undefined_reported.add(test_step.pickle_step_id)
            text = f'Step "{step.text}" is undefined'
            step.commands.append(
                CommandRecord(
                    type=UNDEFINED_COMMAND_TYPE,
                    text=text,
                    result=Result(status=Status.FAILED, message=text),
                )
            )

        telemetry = self.side_channel.drain_step()
        step.logs.extend(telemetry.logs)
        step.network_logs.extend(telemetry.network_logs)
        step.snapshot_before = telemetry.snapshot_before or step.snapshot_before
        step.snapshot_after = telemetry.snapshot_after or step.snapshot_after
        step.trace_file_path = telemetry.trace_file_path or step.trace_file_path

        self._resolve_parameters(state)

    def _resolve_parameters(self, state: CaseState):
        templated = {
            key: value for key, value in state.raw_parameters.items() if has_template(value)
        }
        if not templated:
            return
        data = load_test_data(self._test_data_path())
        if not data:
            return
        for key, value in templated.items():
            resolved = resolve_template(value, data)
            if resolved is not None:
                state.record.parameters[key] = redact_value(resolved)

    def _test_data_path(self) -> Optional[Path]:
        if self.settings.TEST_DATA_FILE:
            return Path(self.settings.TEST_DATA_FILE)
        if self.context.artifact_root:
            return Path(self.context.artifact_root) / "data.json"
        return None

    def _on_test_case_finished(self, event: TestCaseFinished) -> Optional[asyncio.Task]:
        state = self._case(event.test_case_started_id)
        record = state.record
        status, message = case_result(record.steps)
        record.result = Result(
            status=status,
            start_time=record.result.start_time,
            end_time=event.timestamp.to_millis(),
            message=message,
        )

        flushed = self.side_channel.drain_case()
        record.logs.extend(flushed["logs"])
        record.network_logs.extend(flushed["network_logs"])
        if self.side_channel.dropped:
            self.log_warning(
                f"Dropped {self.side_channel.dropped} log entries for '{record.scenario_name}'"
            )

        log_file_id = ArtifactStore(self.context.artifact_root).write_case_log(self.side_channel.case_log_text)
        if log_file_id:
            record.log_file_id = log_file_id

        del self._cases[event.test_case_started_id]
        self.log_info(f"Test case finished: {record.scenario_name} -> {status.value}")

        if self.settings.REPORT_FOLDER:
            self.context.local_report_counter += 1
            path = write_local_report(self.settings.REPORT_FOLDER, self.context.local_report_counter, record)
            self.log_info(f"Report written to {path}")
            return None
        if self.pipeline is None:
            return None
        return self.pipeline.submit(record, self.env_payload())

    def env_payload(self) -> Dict[str, Any]:
        return {"name": self.report.env.name, "baseUrl": self.report.env.base_url}

    # Attachments

    def _on_attachment(self, attachment: Attachment):
        body = _decoded_body(attachment)
        media_type = attachment.media_type

        if media_type == "text/plain":
            self.context.artifact_root = body.replace("\\", "/")
            return

        test_step = None
        if attachment.test_step_id:
            test_step = self.tables.require_test_step(attachment.test_step_id)
        on_pickle_step = test_step is not None and test_step.pickle_step_id is not None

        if media_type == "application/json+env":
            data = self._parse_json(body, media_type)
            if isinstance(data, dict):
                self.report.env = RunEnvironment(name=data.get("name"), base_url=data.get("baseUrl"))
            return

        if not attachment.test_case_started_id:
            self.log_debug(f"Ignoring {media_type} attachment outside a test case")
            return
        state = self._case(attachment.test_case_started_id)

        if media_type == "application/json":
            if not on_pickle_step:
                return
            data = self._parse_json(body, media_type)
            if isinstance(data, dict):
                try:
                    command = CommandRecord.model_validate(data)
                except ValidationError as e:
                    self.log_warning(f"Ignoring malformed command: {e}")
                    return
                self._step(state, test_step).commands.append(command)
        elif media_type in ("application/json+log", "application/json+network"):
            data = self._parse_json(body, media_type)
            entries = data if isinstance(data, list) else [data]
            add = self.side_channel.add_log if media_type.endswith("+log") else self.side_channel.add_network
            for entry in entries:
                if isinstance(entry, dict):
                    add(entry, step_scoped=on_pickle_step)
        elif media_type == "application/json+snapshot-before":
            self.side_channel.set_snapshot("before", body)
        elif media_type == "application/json+snapshot-after":
            self.side_channel.set_snapshot("after", body)
        elif media_type == "application/json+trace":
            data = self._parse_json(body, media_type)
            trace_path = data.get("traceFilePath") if isinstance(data, dict) else None
            if not trace_path:
                return
            if on_pickle_step:
                self.side_channel.set_trace_path(trace_path)
            else:
                state.record.trace_file_id = trace_path
        elif media_type == "application/json+integration":
            data = self._parse_json(body, media_type)
            if isinstance(data, dict):
                state.record.integrations.append(data)
        elif media_type == "text/x-case-log":
            self.side_channel.append_case_log(body)
        else:
            self.log_debug(f"Ignoring attachment with media type {media_type}")

    def _parse_json(self, body: str, media_type: str) -> Any:
        try:
            return json.loads(body)
        except ValueError:
            self.log_warning(f"Ignoring {media_type} attachment with invalid JSON body")
            return None


def case_result(steps: List[StepRecord]) -> tuple:
    """
    Derive a test case's (status, message) from its steps.

    The first step in a failing status decides: a FAILED step keeps its
    message verbatim, an ambiguous/undefined/pending one gets a synthesized
    message. Skipped steps alone do not fail a case.
    """
    for step in steps:
        if step.result.status == Status.FAILED:
            return Status.FAILED, step.result.message
        if step.result.status in SYNTHESIZED_FAILURES:
            return Status.FAILED, f'step "{step.text}" is {step.result.status.value}'
    return Status.PASSED, None


def _status(value: str) -> Status:
    try:
        return Status(value)
    except ValueError:
        return Status.UNKNOWN


def _step_type(value: Optional[str]) -> StepType:
    try:
        return StepType(value)
    except ValueError:
        return StepType.UNKNOWN


def _decoded_body(attachment: Attachment) -> str:
    if (attachment.content_encoding or "").upper() == "BASE64":
        return base64.b64decode(attachment.body).decode("utf-8", errors="replace")
    return attachment.body
