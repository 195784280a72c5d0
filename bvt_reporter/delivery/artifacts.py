"""
Artifact Store - Locates screenshots, traces and case logs referenced by a report
"""
import json
import logging
import uuid
from pathlib import Path
from typing import List, Optional

from ..models.report import TestCaseRecord
from ..utils.helpers import sanitize_filename

logger = logging.getLogger(__name__)


def collect_artifact_refs(record: TestCaseRecord) -> List[str]:
    """
    Enumerate the artifact references (relative to the artifact root) that a
    test case record points at, in report order.

    Args:
        record: Finalized test case record

    Returns:
        Relative file URIs such as ``screenshots/<id>.png``
    """
    refs = []
    for step in record.steps:
        for command in step.commands:
            if command.screenshot_id:
                refs.append(f"screenshots/{command.screenshot_id}.png")
        if step.trace_file_path:
            refs.append(f"trace/{step.trace_file_path}")
    if record.log_file_id:
        refs.append(f"editorLogs/testCaseLog_{record.log_file_id}.log")
    if record.trace_file_id:
        refs.append(f"trace/{record.trace_file_id}")
    return refs


class ArtifactStore:
    """
    On-disk artifact layout for one run:

    - ``<root>/screenshots/<id>.png``
    - ``<root>/trace/<path>``
    - ``<root>/editorLogs/testCaseLog_<id>.log``
    """

    def __init__(self, root: Optional[str]):
        self.root = Path(root) if root else None

    def resolve(self, file_uri: str) -> Optional[Path]:
        """Absolute path for a reference, or None when it does not exist."""
        if self.root is None:
            return None
        path = self.root / file_uri
        return path if path.is_file() else None

    def write_case_log(self, text: str) -> Optional[str]:
        """
        Persist case diagnostic text.

        Args:
            text: Log content

        Returns:
            The log file id, or None if nothing could be written
        """
        if not text or self.root is None:
            return None
        log_file_id = uuid.uuid4().hex
        path = self.root / "editorLogs" / f"testCaseLog_{log_file_id}.log"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not write case log {path}: {e}")
            return None
        return log_file_id


def write_local_report(folder: Path, index: int, record: TestCaseRecord) -> Path:
    """
    Write a test case record as ``<index>_<scenario>.json``.

    Args:
        folder: Destination folder (created if missing)
        index: Monotonic per-run counter
        record: Finalized test case record

    Returns:
        Path to the written file
    """
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / f"{index}_{sanitize_filename(record.scenario_name)}.json"
    path.write_text(json.dumps(record.to_payload(), indent=2), encoding="utf-8")
    return path
