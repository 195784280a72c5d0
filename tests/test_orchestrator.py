"""Tests for the recovery orchestrator."""

from typing import List, Optional, Tuple

import pytest

from bvt_reporter.components.orchestrator import RecoveryOrchestrator, RecoveryState
from bvt_reporter.components.run_context import RunContext
from bvt_reporter.models.report import (
    DeliveryResult,
    Report,
    Result,
    RetrainStats,
    RootCause,
    Status,
    StepRecord,
    TestCaseRecord,
)


class FakeRepair:
    def __init__(self, status: Optional[Status] = Status.PASSED):
        self.status = status
        self.calls: List[Tuple[str, str, List[int]]] = []

    async def repair(self, uri, scenario_name, step_indices):
        self.calls.append((uri, scenario_name, list(step_indices)))
        if self.status is None:
            return None
        return RetrainStats(result=Result(status=self.status), steps_count=2, retrain_id="retrain-1")


class FakeRerun:
    def __init__(self):
        self.calls: List[Tuple[str, str, List[int]]] = []

    async def rerun(self, uri, scenario_name, attempted_steps):
        self.calls.append((uri, scenario_name, list(attempted_steps)))
        return 0


class FakePipeline:
    def __init__(self):
        self.modified: List[str] = []
        self.analytics: List[str] = []

    async def modify_test_case(self, run_id, project_id, record):
        self.modified.append(record.scenario_name)

    async def update_project_analytics(self, project_id):
        self.analytics.append(project_id)


def _failed_record(name: str = "Checkout") -> TestCaseRecord:
    return TestCaseRecord(
        id=f"case-{name}",
        uri="features/shop.feature",
        scenario_name=name,
        steps=[
            StepRecord(text="I open the cart", result=Result(status=Status.PASSED)),
            StepRecord(text="I pay", result=Result(status=Status.FAILED, message="button missing")),
            StepRecord(text="I see the receipt", result=Result(status=Status.SKIPPED)),
        ],
        result=Result(status=Status.FAILED, message="button missing"),
    )


def _unresolved(step: int = 1) -> DeliveryResult:
    return DeliveryResult(status=True, root_cause=RootCause(status=False, failed_step=step, fail_class="locator"))


def _orchestrator(settings, context=None, repair=None):
    context = context or RunContext(run_id="run-1", project_id="project-1")
    repair = repair or FakeRepair()
    rerun = FakeRerun()
    pipeline = FakePipeline()
    orchestrator = RecoveryOrchestrator(context, pipeline, repair=repair, rerun=rerun, config=settings)
    return orchestrator, repair, rerun, pipeline


@pytest.mark.asyncio
async def test_successful_repair_promotes_report(make_settings):
    orchestrator, repair, rerun, pipeline = _orchestrator(make_settings())
    record = _failed_record()
    report = Report(result=Result(status=Status.FAILED), test_cases=[record])
    orchestrator.record_delivery(record, _unresolved(step=1))

    verdict = await orchestrator.recover(report)

    assert verdict == Status.PASSED
    assert report.result.status == Status.PASSED
    assert record.result.status == Status.FIXED_BY_AI
    assert [s.result.status for s in record.steps] == [Status.PASSED, Status.FIXED_BY_AI, Status.SKIPPED]
    assert record.retrain_stats.retrain_id == "retrain-1"
    assert repair.calls == [("features/shop.feature", "Checkout", [1])]
    assert rerun.calls == [("features/shop.feature", "Checkout", [1])]
    assert pipeline.modified == ["Checkout"]
    assert pipeline.analytics == ["project-1"]
    assert orchestrator.transitions == [
        RecoveryState.COLLECTING,
        RecoveryState.RUN_FINISHED,
        RecoveryState.ANALYZING,
        RecoveryState.REPAIRING,
        RecoveryState.DONE,
    ]


@pytest.mark.asyncio
async def test_resolved_root_causes_are_not_repaired(make_settings):
    orchestrator, repair, _, _ = _orchestrator(make_settings())
    record = _failed_record()
    report = Report(result=Result(status=Status.FAILED), test_cases=[record])
    orchestrator.record_delivery(record, DeliveryResult(status=True, root_cause=RootCause(status=True)))
    orchestrator.record_delivery(record, DeliveryResult(status=True))

    verdict = await orchestrator.recover(report)

    assert verdict == Status.FAILED
    assert repair.calls == []
    assert RecoveryState.NO_REPAIR_NEEDED in orchestrator.transitions
    assert orchestrator.state == RecoveryState.DONE


@pytest.mark.asyncio
async def test_retraining_disabled_keeps_run_verdict(make_settings):
    orchestrator, repair, rerun, _ = _orchestrator(make_settings(RETRAIN_ENABLED=False))
    record = _failed_record()
    report = Report(result=Result(status=Status.FAILED), test_cases=[record])
    orchestrator.record_delivery(record, _unresolved())

    assert await orchestrator.recover(report) == Status.FAILED
    assert repair.calls == [] and rerun.calls == []
    assert record.result.status == Status.FAILED


@pytest.mark.asyncio
async def test_step_listed_twice_in_previous_attempts_is_retried_at_most_once(make_settings):
    context = RunContext(run_id="run-1", project_id="project-1", previous_attempts=[2, 2])
    orchestrator, repair, _, _ = _orchestrator(make_settings(), context=context)
    records = [_failed_record(name) for name in ("A", "B", "C")]
    report = Report(result=Result(status=Status.FAILED), test_cases=records)
    for record in records:
        orchestrator.record_delivery(record, _unresolved(step=2))

    await orchestrator.recover(report)

    assert len(repair.calls) <= 1
    assert repair.calls == [("features/shop.feature", "C", [2])]
    assert list(context.previous_attempts) == []


@pytest.mark.asyncio
async def test_same_failure_reported_twice_is_repaired_once(make_settings):
    orchestrator, repair, _, _ = _orchestrator(make_settings(), repair=FakeRepair(status=Status.FAILED))
    record = _failed_record()
    report = Report(result=Result(status=Status.FAILED), test_cases=[record])
    orchestrator.record_delivery(record, _unresolved(step=1))
    orchestrator.record_delivery(record, _unresolved(step=1))

    verdict = await orchestrator.recover(report)

    assert len(repair.calls) == 1
    assert verdict == Status.FAILED
    assert record.retrain_stats.result.status == Status.FAILED
    assert record.result.status == Status.FAILED


@pytest.mark.asyncio
async def test_rerun_carries_every_attempted_step(make_settings):
    orchestrator, _, rerun, _ = _orchestrator(make_settings(), repair=FakeRepair(status=Status.FAILED))
    record = _failed_record()
    report = Report(result=Result(status=Status.FAILED), test_cases=[record])
    orchestrator.record_delivery(record, _unresolved(step=1))
    orchestrator.record_delivery(record, _unresolved(step=2))

    await orchestrator.recover(report)

    assert [call[2] for call in rerun.calls] == [[1], [1, 2]]


@pytest.mark.asyncio
async def test_repair_without_result_leaves_record_untouched(make_settings):
    orchestrator, _, rerun, pipeline = _orchestrator(make_settings(), repair=FakeRepair(status=None))
    record = _failed_record()
    report = Report(result=Result(status=Status.FAILED), test_cases=[record])
    orchestrator.record_delivery(record, _unresolved())

    assert await orchestrator.recover(report) == Status.FAILED
    assert record.retrain_stats is None
    assert pipeline.modified == [] and rerun.calls == []


@pytest.mark.asyncio
async def test_partial_repair_does_not_promote_report(make_settings):
    orchestrator, _, _, _ = _orchestrator(make_settings())
    fixed, still_failing = _failed_record("Fixed"), _failed_record("Broken")
    report = Report(result=Result(status=Status.FAILED), test_cases=[fixed, still_failing])
    orchestrator.record_delivery(fixed, _unresolved())

    assert await orchestrator.recover(report) == Status.FAILED
    assert fixed.result.status == Status.FIXED_BY_AI
    assert report.result.status == Status.FAILED
