"""
Delivery Pipeline - Ships finalized test case records and their artifacts to the collector
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import httpx

from ..components.base_component import BaseComponent
from ..components.run_context import RunContext
from ..config import Settings
from ..models.report import DeliveryResult, RunHandle, Status, TestCaseRecord
from .artifacts import ArtifactStore, collect_artifact_refs
from .client import AuthorizationError, CollectorClient, CollectorError
from .retry import compute_backoff_seconds

LOCAL_RUN = RunHandle(id="local-run", project_id="local-project")

DeliveredCallback = Callable[[TestCaseRecord, DeliveryResult], None]


class DeliveryPipeline(BaseComponent):
    """
    Turns finalized records into collector calls:
    - Creates the remote run once per context
    - Uploads referenced artifacts with bounded concurrency
    - Submits the record with end-to-end retry and exponential backoff
    - Sends best-effort heartbeats and analytics events

    With UPLOAD_REPORTS disabled every network operation is a no-op.
    """

    def __init__(
        self,
        context: RunContext,
        client: Optional[CollectorClient] = None,
        config: Settings = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_delivered: Optional[DeliveredCallback] = None,
    ):
        super().__init__(
            name="DeliveryPipeline",
            description="Uploads test case reports and artifacts",
            config=config,
        )
        self.context = context
        self.client = client or CollectorClient(self.settings)
        self.sleep = sleep
        self.on_delivered = on_delivered
        self.report_link: Optional[str] = None
        self._run_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.settings.UPLOAD_REPORTS

    # Run document

    async def create_run(self, name: Optional[str], env: Dict[str, Any]) -> RunHandle:
        if not self.enabled:
            self.log_debug("Skipping run creation, report upload disabled")
            return LOCAL_RUN
        handle = await self.client.create_run(name, env)
        self.log_info(f"Created run {handle.id} in project {handle.project_id}")
        return handle

    async def ensure_run(self, env: Optional[Dict[str, Any]] = None) -> RunHandle:
        """
        Create the remote run on first use and reuse it afterwards.

        Preconfigured RUN_ID/PROJECT_ID on the context are used as-is.
        """
        async with self._run_lock:
            if not self.context.has_run:
                handle = await self.create_run(self.context.run_name, env or {})
                self.context.run_id = handle.id
                self.context.project_id = handle.project_id
            return RunHandle(id=self.context.run_id, project_id=self.context.project_id)

    # Scheduling

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self.context.begin_delivery(task)
        return task

    def submit(self, record: TestCaseRecord, env: Optional[Dict[str, Any]] = None) -> Optional[asyncio.Task]:
        """Schedule delivery of a finalized record; registered as in flight."""
        if not self.enabled:
            self.log_debug(f"Report upload disabled, keeping test case {record.id} local")
            return None
        return self._track(self._deliver(record, env or {}))

    def schedule_status(self, status: str) -> Optional[asyncio.Task]:
        if not self.enabled or not self.settings.STATUS_UUID:
            return None
        return self._track(self.create_status(status))

    async def _deliver(self, record: TestCaseRecord, env: Dict[str, Any]):
        try:
            handle = await self.ensure_run(env)
            result = await self.upload_test_case(
                record,
                handle.id,
                handle.project_id,
                self.context.artifact_root,
                rerun_id=self.settings.RERUN_ID,
            )
        except AuthorizationError as e:
            self.log_error(f"Authorization failed, aborting run: {e}")
            self.context.abort(e)
            return
        except CollectorError as e:
            self.log_error(f"Could not deliver test case {record.id}: {e}")
            return
        if result is not None and self.on_delivered is not None:
            self.on_delivered(record, result)

    # Test cases

    def compose_rerun_id(self, run_id: str, rerun_id: Optional[str]) -> Optional[str]:
        if rerun_id:
            return rerun_id if run_id in rerun_id else f"{run_id}{rerun_id}"
        return self.settings.RETRY_ID or None

    def _payload(self, record: TestCaseRecord) -> Dict[str, Any]:
        payload = record.to_payload()
        if self.settings.normalized_mode == "executions" and self.settings.VIDEO_ID:
            payload["id"] = self.settings.VIDEO_ID
        return payload

    async def upload_test_case(
        self,
        record: TestCaseRecord,
        run_id: str,
        project_id: str,
        artifact_root: Optional[str],
        rerun_id: Optional[str] = None,
    ) -> Optional[DeliveryResult]:
        """
        Upload artifacts and submit one test case record.

        Args:
            record: Finalized test case record
            run_id: Remote run id
            project_id: Remote project id
            artifact_root: Local folder holding the referenced artifacts
            rerun_id: Rerun correlation id, composed with run_id if needed

        Returns:
            The collector's response, or None when delivery was disabled or
            every attempt failed
        """
        if not self.enabled:
            return None

        final_rerun_id = self.compose_rerun_id(run_id, rerun_id)
        attempts = max(1, self.settings.MAX_RETRIES)
        # Artifacts uploaded or given up on; kept across submission attempts
        settled: Set[str] = set()
        for attempt in range(attempts):
            try:
                await self._upload_artifacts(record, run_id, artifact_root, settled)
                result = await self.client.create_test_case(
                    run_id, project_id, self._payload(record), rerun_id=final_rerun_id
                )
            except AuthorizationError:
                raise
            except CollectorError as e:
                self.log_warning(
                    f"Attempt {attempt + 1}/{attempts} to upload test case {record.id} failed: {e}"
                )
                if attempt < attempts - 1:
                    await self.sleep(
                        compute_backoff_seconds(attempt, self.settings.BACKOFF_BASE_SECONDS)
                    )
                continue

            await self._track_event(project_id)
            self.log_report_link(run_id, project_id, record.result.status)
            return result

        self.log_error(f"Failed to upload test case {record.id} after {attempts} attempts")
        return None

    async def _upload_artifacts(
        self,
        record: TestCaseRecord,
        run_id: str,
        artifact_root: Optional[str],
        settled: Set[str],
    ):
        file_uris = [uri for uri in collect_artifact_refs(record) if uri not in settled]
        if not file_uris:
            return
        try:
            upload_urls = await self.client.get_presigned_urls(file_uris, run_id)
        except AuthorizationError:
            raise
        except CollectorError as e:
            self.log_warning(f"Could not get upload urls for test case {record.id}: {e}")
            return

        store = ArtifactStore(artifact_root)
        semaphore = asyncio.Semaphore(max(1, self.settings.ARTIFACT_CONCURRENCY))

        async def _upload(file_uri: str):
            upload_url = upload_urls.get(file_uri)
            if not upload_url:
                return
            path = store.resolve(file_uri)
            settled.add(file_uri)
            if path is None:
                self.log_debug(f"Artifact {file_uri} not found, skipping")
                return
            async with semaphore:
                for _ in range(max(1, self.settings.MAX_RETRIES)):
                    if await self.client.upload_file(path, upload_url):
                        return
            self.log_warning(f"Failed to upload file: {file_uri}")

        await asyncio.gather(*(_upload(file_uri) for file_uri in file_uris))

    async def modify_test_case(self, run_id: str, project_id: str, record: TestCaseRecord):
        if not self.enabled:
            return
        try:
            await self.client.modify_test_case(run_id, project_id, self._payload(record))
        except AuthorizationError:
            raise
        except CollectorError as e:
            self.log_error(f"Failed to modify test case {record.id}: {e}")
            return
        self.log_report_link(run_id, project_id, record.result.status)

    # Side channels

    async def create_status(self, status: str):
        """Best-effort run heartbeat; every failure is swallowed."""
        if not self.enabled or not self.settings.STATUS_UUID:
            return
        try:
            await self.client.create_status(status, self.settings.STATUS_UUID)
        except (CollectorError, httpx.HTTPError) as e:
            self.log_debug(f"Failed to send status '{status}', ignoring it: {e}")

    async def upload_complete(self, run_id: str, project_id: str):
        if not self.enabled:
            return
        await self.client.upload_completion(run_id, project_id)
        await self._track_event(project_id)

    async def update_project_analytics(self, project_id: str):
        if not self.enabled:
            return
        try:
            await self.client.update_recovery_count(project_id)
        except CollectorError as e:
            self.log_error(f"Failed to update project metadata: {e}")

    async def _track_event(self, project_id: str):
        try:
            await self.client.track_event(project_id)
        except httpx.HTTPError as e:
            self.log_debug(f"Analytics event not recorded: {e}")

    def log_report_link(self, run_id: str, project_id: str, status: Status = None) -> str:
        self.report_link = f"{self.settings.REPORT_LINK_BASE_URL.rstrip('/')}/{project_id}/run-report/{run_id}"
        suffix = f" ({status.value})" if status is not None else ""
        self.log_info(f"Report link: {self.report_link}{suffix}")
        return self.report_link

    async def aclose(self):
        await self.client.aclose()
