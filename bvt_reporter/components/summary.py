"""
Run Summary - Counts, failures and warnings for console output
"""
from collections import Counter
from typing import List, Optional

from ..models.report import IssueNote, Report, RunSummary, Status, TestCaseRecord
from ..utils.helpers import format_duration, truncate_text


def build_summary(report: Report, report_link: Optional[str] = None) -> RunSummary:
    """
    Generate the summary of an aggregated report.

    Args:
        report: Aggregated (and possibly repaired) report
        report_link: Link to the uploaded report, if any

    Returns:
        RunSummary
    """
    test_cases = report.test_cases
    step_counts = Counter(
        step.result.status.value for test_case in test_cases for step in test_case.steps
    )

    failures: List[IssueNote] = []
    warnings: List[IssueNote] = []
    for test_case in test_cases:
        status = test_case.result.status
        if status == Status.PASSED:
            continue
        note = IssueNote(
            scenario_name=test_case.scenario_name,
            uri=test_case.uri,
            status=status,
            message=test_case.result.message or _first_issue(test_case),
        )
        (failures if status == Status.FAILED else warnings).append(note)

    duration_ms = None
    if report.result.start_time is not None and report.result.end_time is not None:
        duration_ms = int(report.result.end_time - report.result.start_time)

    return RunSummary(
        total_tests=len(test_cases),
        passed=sum(1 for tc in test_cases if tc.result.status == Status.PASSED),
        failed=len(failures),
        fixed_by_ai=sum(1 for tc in test_cases if tc.result.status == Status.FIXED_BY_AI),
        total_steps=sum(step_counts.values()),
        step_counts=dict(step_counts),
        duration_ms=duration_ms,
        overall_status=report.result.status,
        failures=failures,
        warnings=warnings,
        report_link=report_link,
    )


def _first_issue(test_case: TestCaseRecord) -> Optional[str]:
    for step in test_case.steps:
        if step.result.status != Status.PASSED:
            return f'step "{step.text}" is {step.result.status.value}'
    return None


def format_summary(summary: RunSummary) -> str:
    """Render a summary as console text."""
    lines = []
    for title, issues in (("Failures", summary.failures), ("Warnings", summary.warnings)):
        if not issues:
            continue
        lines.append(f"{title}:")
        lines.append("")
        for number, issue in enumerate(issues, start=1):
            lines.append(f"{number}) Scenario: {issue.scenario_name} # {issue.uri}")
            lines.append(f"   {issue.status.value}: {truncate_text(issue.message, 300) or '-'}")
        lines.append("")

    if summary.report_link:
        lines.append(f"Report link: {summary.report_link}")

    details = [f"{summary.passed} passed"]
    if summary.failed:
        details.append(f"{summary.failed} failed")
    if summary.fixed_by_ai:
        details.append(f"{summary.fixed_by_ai} fixed by AI")
    lines.append(f"{summary.total_tests} scenarios ({', '.join(details)})")

    step_details = ", ".join(
        f"{count} {status.lower()}" for status, count in sorted(summary.step_counts.items())
    )
    lines.append(f"{summary.total_steps} steps ({step_details})" if step_details else "0 steps")
    lines.append(f"Duration: {format_duration(summary.duration_ms)}")
    lines.append(f"Overall: {summary.overall_status.value}")
    return "\n".join(lines)
