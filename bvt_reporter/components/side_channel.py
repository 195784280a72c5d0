"""
Side-Channel Collector - Out-of-band telemetry for the active step and test case
"""
from typing import Any, Dict, List, Optional


class StepTelemetry:
    """Diagnostics gathered while a single step is open."""

    def __init__(self):
        self.logs: List[Dict[str, Any]] = []
        self.network_logs: List[Dict[str, Any]] = []
        self.snapshot_before: Optional[str] = None
        self.snapshot_after: Optional[str] = None
        self.trace_file_path: Optional[str] = None


class SideChannelCollector:
    """
    Accumulates page logs, network entries, snapshots, trace references and
    case diagnostic text.

    Entries attached to a scenario step land in the step accumulator; entries
    attached to a hook (or to no step at all) land in the case accumulator.
    The entry cap applies to the whole test case run, both scopes combined.
    """

    def __init__(self, max_entries: int = 1000):
        self.max_entries = max_entries
        self.dropped = 0
        self._entry_count = 0
        self._step = StepTelemetry()
        self._case_logs: List[Dict[str, Any]] = []
        self._case_network: List[Dict[str, Any]] = []
        self._case_log_lines: List[str] = []

    def begin_case(self):
        """Reset every accumulator for a new test case run."""
        self.dropped = 0
        self._entry_count = 0
        self._step = StepTelemetry()
        self._case_logs = []
        self._case_network = []
        self._case_log_lines = []

    def _admit(self) -> bool:
        if self._entry_count >= self.max_entries:
            self.dropped += 1
            return False
        self._entry_count += 1
        return True

    def add_log(self, entry: Dict[str, Any], step_scoped: bool) -> bool:
        """
        Record a page log entry.

        Returns:
            False when the entry was dropped because the cap was reached
        """
        if not self._admit():
            return False
        target = self._step.logs if step_scoped else self._case_logs
        target.append(entry)
        return True

    def add_network(self, entry: Dict[str, Any], step_scoped: bool) -> bool:
        """Record a network entry; same scoping and cap as add_log."""
        if not self._admit():
            return False
        target = self._step.network_logs if step_scoped else self._case_network
        target.append(entry)
        return True

    def set_snapshot(self, when: str, snapshot: str):
        if when == "before":
            self._step.snapshot_before = snapshot
        else:
            self._step.snapshot_after = snapshot

    def set_trace_path(self, path: str):
        self._step.trace_file_path = path

    def append_case_log(self, text: str):
        if text:
            self._case_log_lines.append(text)

    @property
    def case_log_text(self) -> str:
        return "\n".join(self._case_log_lines)

    def drain_step(self) -> StepTelemetry:
        """Hand over the step accumulator and start a fresh one."""
        telemetry = self._step
        self._step = StepTelemetry()
        return telemetry

    def drain_case(self) -> Dict[str, List[Dict[str, Any]]]:
        """Hand over case-scoped logs and network entries and reset them."""
        drained = {"logs": self._case_logs, "network_logs": self._case_network}
        self._case_logs = []
        self._case_network = []
        return drained
