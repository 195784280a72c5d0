"""
Run Session - Owns one run: wires aggregation, delivery and recovery together
"""
import asyncio
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from .components.aggregator import EventAggregator
from .components.base_component import BaseComponent
from .components.collaborators import RepairCollaborator, RerunCollaborator
from .components.orchestrator import RecoveryOrchestrator
from .components.run_context import RunContext
from .components.summary import build_summary
from .config import Settings
from .delivery.client import AuthorizationError, CollectorClient, CollectorError
from .delivery.pipeline import DeliveryPipeline
from .models.events import Envelope
from .models.report import Report, RunSummary, Status


class RunSession(BaseComponent):
    """
    Top-level owner of a run.

    Envelopes go through ``handle`` (or ``consume`` for a whole stream);
    the run is finalized when RunFinished arrives, or explicitly by the
    caller if the stream ends early.
    """

    def __init__(
        self,
        config: Settings = None,
        run_name: Optional[str] = None,
        client: Optional[CollectorClient] = None,
        repair: Optional[RepairCollaborator] = None,
        rerun: Optional[RerunCollaborator] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__(
            name="RunSession",
            description="Coordinates one reporting run",
            config=config,
        )
        self.context = RunContext.from_settings(self.settings, run_name)
        self.pipeline = DeliveryPipeline(self.context, client=client, config=self.settings, sleep=sleep)
        self.aggregator = EventAggregator(self.context, self.pipeline, config=self.settings)
        self.orchestrator = RecoveryOrchestrator(
            self.context, self.pipeline, repair=repair, rerun=rerun, config=self.settings
        )
        self.pipeline.on_delivered = self.orchestrator.record_delivery
        self.verdict: Optional[Status] = None
        self._lock = asyncio.Lock()

    @property
    def report(self) -> Report:
        return self.aggregator.report

    @property
    def finalized(self) -> bool:
        return self.verdict is not None

    @property
    def exit_code(self) -> int:
        return 0 if self.verdict == Status.PASSED else 1

    async def handle(self, envelope: Envelope) -> Optional[Status]:
        """
        Process one envelope.

        Returns:
            The verdict if this envelope finished the run, else None

        Raises:
            ProtocolViolationError: The stream broke its ordering contract
            AuthorizationError: A delivery was refused by the collector
        """
        self.context.raise_if_aborted()
        if self.finalized:
            self.log_warning(f"Run already finalized, ignoring {envelope.kind}")
            return None
        self.aggregator.handle(envelope)
        if envelope.kind == "test_run_finished":
            return await self.finalize()
        return None

    async def consume(self, events: AsyncIterator[Envelope]) -> Status:
        """Consume a whole stream and return the verdict."""
        async for envelope in events:
            await self.handle(envelope)
            if self.finalized:
                break
        return await self.finalize()

    async def finalize(self) -> Status:
        """
        Wait for deliveries, run recovery, signal completion.

        Returns:
            Status.PASSED or Status.FAILED
        """
        async with self._lock:
            if self.verdict is not None:
                return self.verdict

            await self.context.wait_drained()
            self.context.raise_if_aborted()

            verdict = await self.orchestrator.recover(self.report)
            await self._complete_upload()

            self.context.mark_finished()
            await self.context.wait_until_complete()
            self.verdict = verdict
            self.log_info(f"Run finished with verdict {verdict.value}")
            return verdict

    async def _complete_upload(self):
        if not self.pipeline.enabled or self.settings.REPORT_FOLDER:
            return
        try:
            handle = await self.pipeline.ensure_run(self.aggregator.env_payload())
            await self.pipeline.upload_complete(handle.id, handle.project_id)
            self.pipeline.log_report_link(handle.id, handle.project_id)
        except AuthorizationError:
            raise
        except CollectorError as e:
            self.log_error(f"Error uploading report: {e}")

    def summary(self) -> RunSummary:
        return build_summary(self.report, self.pipeline.report_link)

    async def aclose(self):
        await self.pipeline.aclose()
