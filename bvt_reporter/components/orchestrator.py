"""
Recovery Orchestrator - Drives automated repair of failed test cases after the run
"""
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from .base_component import BaseComponent
from .collaborators import RepairCollaborator, RerunCollaborator
from .run_context import RunContext
from ..config import Settings
from ..models.report import (
    SYNTHESIZED_FAILURES,
    DeliveryResult,
    Report,
    Result,
    RootCause,
    Status,
    TestCaseRecord,
)

RECOVERED_STATUSES = (Status.PASSED, Status.FIXED_BY_AI)


class RecoveryState(str, Enum):
    COLLECTING = "COLLECTING"
    RUN_FINISHED = "RUN_FINISHED"
    ANALYZING = "ANALYZING"
    NO_REPAIR_NEEDED = "NO_REPAIR_NEEDED"
    REPAIRING = "REPAIRING"
    DONE = "DONE"


class RecoveryOrchestrator(BaseComponent):
    """
    Orchestrates the recovery workflow:
    - Collects unresolved root causes from delivery responses
    - Invokes the repair collaborator once per failing step
    - Folds repaired results back into the report and the collector
    - Re-runs repaired scenarios
    - Computes the final verdict
    """

    def __init__(
        self,
        context: RunContext,
        pipeline,
        repair: Optional[RepairCollaborator] = None,
        rerun: Optional[RerunCollaborator] = None,
        config: Settings = None,
    ):
        super().__init__(
            name="RecoveryOrchestrator",
            description="Repairs failed test cases and recomputes the verdict",
            config=config,
        )
        self.context = context
        self.pipeline = pipeline
        self.repair = repair or RepairCollaborator(self.settings)
        self.rerun = rerun or RerunCollaborator(self.settings)
        self.state = RecoveryState.COLLECTING
        self.transitions: List[RecoveryState] = [self.state]
        self.failures: List[Tuple[TestCaseRecord, RootCause]] = []
        self.attempted: Set[Tuple[str, str, int]] = set()
        self.attempted_steps: Dict[Tuple[str, str], List[int]] = {}
        self.repairs_applied = 0

    def record_delivery(self, record: TestCaseRecord, result: DeliveryResult):
        """Remember unresolved root causes; resolved ones need no repair."""
        root_cause = result.root_cause
        if root_cause is None or root_cause.status:
            return
        self.log_info(
            f"'{record.scenario_name}' failed at step {root_cause.failed_step}: "
            f"{root_cause.fail_class or 'unclassified'}"
        )
        self.failures.append((record, root_cause))

    async def recover(self, report: Report) -> Status:
        """
        Run the repair loop and return the final verdict.

        Args:
            report: The aggregated report; updated in place

        Returns:
            Status.PASSED or Status.FAILED
        """
        self._transition(RecoveryState.RUN_FINISHED)
        self._transition(RecoveryState.ANALYZING)

        if not self.failures:
            self.log_info("No unresolved failures, no repair needed")
            return self._finish(RecoveryState.NO_REPAIR_NEEDED, report)
        if not self.settings.RETRAIN_ENABLED:
            self.log_info(f"Retraining disabled, leaving {len(self.failures)} failure(s) as reported")
            return self._finish(RecoveryState.NO_REPAIR_NEEDED, report)

        self._transition(RecoveryState.REPAIRING)
        self.log_info(f"Starting repair of {len(self.failures)} failure(s)")
        for record, root_cause in self.failures:
            await self._repair_one(record, root_cause.failed_step)

        if self.repairs_applied and all(
            test_case.result.status in RECOVERED_STATUSES for test_case in report.test_cases
        ):
            report.result = Result(
                status=Status.PASSED,
                start_time=report.result.start_time,
                end_time=report.result.end_time,
            )
            self.log_info("All failures repaired, report promoted to PASSED")

        return self._finish(RecoveryState.DONE, report)

    def _transition(self, state: RecoveryState):
        self.state = state
        self.transitions.append(state)

    def _finish(self, state: RecoveryState, report: Report) -> Status:
        if state != RecoveryState.DONE:
            self._transition(state)
        self._transition(RecoveryState.DONE)
        return verdict(report)

    def _should_skip(self, key: Tuple[str, str, int]) -> bool:
        if key in self.attempted:
            return True
        queue = self.context.previous_attempts
        if queue and queue[0] == key[2]:
            queue.popleft()
            self.attempted.add(key)
            return True
        return False

    async def _repair_one(self, record: TestCaseRecord, step_index: int):
        key = (record.uri, record.scenario_name, step_index)
        if self._should_skip(key):
            self.log_info(f"Step {step_index} of '{record.scenario_name}' already attempted, skipping")
            return
        self.attempted.add(key)
        scenario_steps = self.attempted_steps.setdefault((record.uri, record.scenario_name), [])
        scenario_steps.append(step_index)

        stats = await self.repair.repair(record.uri, record.scenario_name, [step_index])
        if stats is None:
            self.log_warning(f"Repair of '{record.scenario_name}' produced no result")
            return

        record.retrain_stats = stats
        fixed = stats.result.status in RECOVERED_STATUSES
        if fixed:
            mark_fixed_by_ai(record)
            self.repairs_applied += 1
            self.log_info(f"'{record.scenario_name}' fixed by AI")

        await self.pipeline.modify_test_case(self.context.run_id, self.context.project_id, record)
        if fixed:
            await self.pipeline.update_project_analytics(self.context.project_id)
        await self.rerun.rerun(record.uri, record.scenario_name, list(scenario_steps))


def mark_fixed_by_ai(record: TestCaseRecord):
    """Flip a repaired record and its failing steps to FIXED_BY_AI."""
    for step in record.steps:
        if step.result.status == Status.FAILED or step.result.status in SYNTHESIZED_FAILURES:
            step.result = Result(
                status=Status.FIXED_BY_AI,
                start_time=step.result.start_time,
                end_time=step.result.end_time,
            )
    record.result = Result(
        status=Status.FIXED_BY_AI,
        start_time=record.result.start_time,
        end_time=record.result.end_time,
    )


def verdict(report: Report) -> Status:
    return Status.FAILED if report.result.status == Status.FAILED else Status.PASSED
