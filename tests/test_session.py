"""End-to-end tests for a run session."""

from typing import Any, Dict, Iterable, List

import pytest

from bvt_reporter.components.lookup_tables import ProtocolViolationError
from bvt_reporter.delivery.client import AuthorizationError
from bvt_reporter.models.events import Envelope
from bvt_reporter.models.report import DeliveryResult, Result, RetrainStats, RootCause, Status
from bvt_reporter.session import RunSession

from tests.messages import StreamBuilder, two_case_stream
from tests.test_pipeline import FakeCollector, SleepRecorder


async def _stream(envelopes: Iterable[Dict[str, Any]]):
    for envelope in envelopes:
        yield Envelope.from_dict(envelope)


class RootCauseCollector(FakeCollector):
    """Flags failed test cases with an unresolved root cause at step 1."""

    async def create_test_case(self, run_id, project_id, report, rerun_id=None):
        await super().create_test_case(run_id, project_id, report, rerun_id)
        if report["result"]["status"] == "FAILED":
            return DeliveryResult(status=True, root_cause=RootCause(status=False, failed_step=1))
        return DeliveryResult(status=True)


class PassingRepair:
    def __init__(self):
        self.calls: List[str] = []

    async def repair(self, uri, scenario_name, step_indices):
        self.calls.append(scenario_name)
        return RetrainStats(result=Result(status=Status.PASSED), steps_count=2)


class NoRerun:
    async def rerun(self, uri, scenario_name, attempted_steps):
        return None


@pytest.mark.asyncio
async def test_failed_step_fails_the_run(make_settings):
    session = RunSession(make_settings())

    verdict = await session.consume(_stream(two_case_stream()))

    assert verdict == Status.FAILED
    assert session.exit_code == 1
    assert session.report.result.status == Status.FAILED
    assert len(session.report.test_cases) == 2
    assert session.report.test_cases[1].result.message == "element not found"
    summary = session.summary()
    assert (summary.total_tests, summary.passed, summary.failed) == (2, 1, 1)
    assert summary.failures[0].message == "element not found"


@pytest.mark.asyncio
async def test_parse_error_run(make_settings):
    session = RunSession(make_settings())

    verdict = await session.consume(_stream([{"parseError": {"message": "unexpected token"}}]))

    assert verdict == Status.FAILED
    assert session.report.result.status == Status.FAILED
    assert session.report.result.message == "unexpected token"
    assert session.report.test_cases == []


@pytest.mark.asyncio
async def test_passing_run_exits_zero(make_settings):
    builder = StreamBuilder()
    builder.add_scenario("Search", ["I search"])
    envelopes = builder.preamble() + builder.run_case(0, [("PASSED", None)]) + [builder.run_finished(True)]
    session = RunSession(make_settings())

    assert await session.consume(_stream(envelopes)) == Status.PASSED
    assert session.exit_code == 0


@pytest.mark.asyncio
async def test_stream_without_run_finished_is_still_finalized(make_settings):
    builder = StreamBuilder()
    builder.add_scenario("Search", ["I search"])
    envelopes = builder.preamble() + builder.run_case(0, [("PASSED", None)])
    session = RunSession(make_settings())

    verdict = await session.consume(_stream(envelopes))

    assert session.finalized
    assert verdict == Status.PASSED
    assert session.report.result.status == Status.STARTED


@pytest.mark.asyncio
async def test_delivered_failure_is_repaired_and_run_passes(make_settings):
    client = RootCauseCollector()
    repair = PassingRepair()
    session = RunSession(
        make_settings(UPLOAD_REPORTS=True),
        client=client,
        repair=repair,
        rerun=NoRerun(),
        sleep=SleepRecorder(),
    )

    verdict = await session.consume(_stream(two_case_stream()))

    assert verdict == Status.PASSED
    assert repair.calls == ["Invalid login"]
    assert session.report.test_cases[1].result.status == Status.FIXED_BY_AI
    assert session.report.result.status == Status.PASSED
    assert client.calls.count("create_run") == 1
    assert client.calls.count("create_test_case") == 2
    assert "modify_test_case" in client.calls
    assert "update_recovery_count" in client.calls
    assert client.calls[-2:] == ["upload_completion", "track_event"]
    assert session.summary().report_link.endswith("/project-1/run-report/run-1")


@pytest.mark.asyncio
async def test_authorization_failure_aborts_session(make_settings):
    client = FakeCollector(submit_error=AuthorizationError("plan ended", status_code=403))
    session = RunSession(make_settings(UPLOAD_REPORTS=True), client=client, sleep=SleepRecorder())

    with pytest.raises(AuthorizationError):
        await session.consume(_stream(two_case_stream()))
    assert not session.finalized


@pytest.mark.asyncio
async def test_protocol_violation_propagates(make_settings):
    builder = StreamBuilder()
    builder.add_scenario("Search", ["I search"])
    envelopes = builder.preamble() + [builder.step_started(0, 0)]
    session = RunSession(make_settings())

    with pytest.raises(ProtocolViolationError):
        await session.consume(_stream(envelopes))
