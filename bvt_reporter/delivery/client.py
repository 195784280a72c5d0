"""
Collector Client - httpx-based client for the remote report collector
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from ..config import Settings, settings as default_settings
from ..models.report import DeliveryResult, RunHandle
from ..utils.helpers import summarize_error_body

logger = logging.getLogger(__name__)

UPLOAD_REPORT_EVENT = "upload_report"


class CollectorError(Exception):
    """The collector rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthorizationError(CollectorError):
    """The collector refused our credentials (plan expired, bad token)."""


class CollectorClient:
    """
    Thin async client for the collector's REST API.
    Every request carries the bearer token and the client source header;
    a call only succeeds on HTTP 200 with ``{"status": true}`` in the body.
    """

    def __init__(
        self,
        config: Settings = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Settings instance; defaults to the module-level settings
            http_client: Pre-built AsyncClient (tests pass one with a MockTransport)
        """
        self.settings = config or default_settings
        self.base_url = self.settings.REPORT_SERVICE_URL.rstrip("/")
        self.storage_url = self.settings.STORAGE_SERVICE_URL.rstrip("/")
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=self.settings.REQUEST_TIMEOUT)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"x-source": self.settings.CLIENT_SOURCE}
        if self.settings.TOKEN:
            headers["Authorization"] = f"Bearer {self.settings.TOKEN}"
        if extra:
            headers.update(extra)
        return headers

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = await self.http.post(url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise CollectorError(f"POST {path} failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthorizationError(
                "Collector refused the request; cannot upload reports or perform retraining",
                status_code=response.status_code,
            )
        if response.status_code != 200:
            raise CollectorError(
                f"POST {path} returned {summarize_error_body(response.text, response.status_code)}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise CollectorError(f"POST {path} returned a non-JSON body", status_code=200) from e
        if not isinstance(data, dict) or data.get("status") is not True:
            raise CollectorError(f"POST {path} was not accepted by the collector", status_code=200)
        return data

    def _run_metadata(self) -> Dict[str, Any]:
        return {
            "browser": self.settings.BROWSER,
            "mode": self.settings.normalized_mode,
        }

    # Run lifecycle

    async def create_run(self, name: Optional[str], env: Dict[str, Any]) -> RunHandle:
        data = await self._post(
            "/cucumber-runs/create",
            {
                "name": name or "TEST",
                "branch": self.settings.GIT_BRANCH,
                "video_id": self.settings.VIDEO_ID,
                **self._run_metadata(),
                "env": {"name": env.get("name"), "baseUrl": env.get("baseUrl")},
            },
        )
        return RunHandle.model_validate(data.get("run") or {})

    async def upload_completion(self, run_id: str, project_id: str):
        await self._post(
            "/cucumber-runs/uploadCompletion",
            {"runId": run_id, "projectId": project_id, **self._run_metadata()},
        )

    # Test cases

    async def get_presigned_urls(self, file_uris: List[str], run_id: str) -> Dict[str, str]:
        data = await self._post(
            "/cucumber-runs/generateuploadurls",
            {"fileUris": file_uris, "runId": run_id},
        )
        return data.get("uploadUrls") or {}

    async def create_test_case(
        self,
        run_id: str,
        project_id: str,
        report: Dict[str, Any],
        rerun_id: Optional[str] = None,
    ) -> DeliveryResult:
        data = await self._post(
            "/cucumber-runs/createNewTestCase",
            {
                "runId": run_id,
                "projectId": project_id,
                "testProgressReport": report,
                **self._run_metadata(),
                "rerunId": rerun_id,
                "video_id": self.settings.VIDEO_ID,
            },
        )
        return DeliveryResult.model_validate(data)

    async def modify_test_case(self, run_id: str, project_id: str, report: Dict[str, Any]):
        await self._post(
            "/cucumber-runs/modifyTestCase",
            {"runId": run_id, "projectId": project_id, "testProgressReport": report},
        )

    # Side channels

    async def create_status(self, status: str, status_uuid: str):
        await self._post("/scenarios/status", {"status": {"status": status}, "uuid": status_uuid})

    async def update_recovery_count(self, project_id: str):
        await self._post("/project/updateAIRecoveryCount", {"projectId": project_id})

    async def track_event(self, project_id: str, event: str = UPLOAD_REPORT_EVENT):
        """Fire an analytics event at the storage service."""
        response = await self.http.post(
            f"{self.storage_url}/event",
            json={"event": event},
            headers=self._headers({"x-bvt-project-id": project_id}),
        )
        response.raise_for_status()

    # Artifacts

    async def upload_file(self, file_path: Path, upload_url: str) -> bool:
        """
        PUT a local file to a pre-signed URL.

        Returns:
            True on a 2xx response, False otherwise
        """
        try:
            content = Path(file_path).read_bytes()
            response = await self.http.put(
                upload_url,
                content=content,
                headers={"Content-Type": "application/octet-stream"},
            )
        except (OSError, httpx.HTTPError) as e:
            logger.warning(f"Error uploading {file_path}: {e}")
            return False
        if not response.is_success:
            logger.warning(
                f"Error uploading {file_path}: "
                f"{summarize_error_body(response.text, response.status_code)}"
            )
            return False
        return True

    async def aclose(self):
        if self._owns_client:
            await self.http.aclose()
