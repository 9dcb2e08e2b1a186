"""Assemble the codeflow health report and its one-line status summary."""

from __future__ import annotations

from typing import Optional

from codeflow_health.models import (
    UNKNOWN_STATUS,
    BackflowSummary,
    BranchState,
    BranchStatus,
    CodeflowPR,
    ForwardFlowSummary,
    HealthStatus,
    PRHealth,
    Report,
)

_UP_TO_DATE = {BranchState.UP_TO_DATE.value, BranchState.RELEASED_PREVIEW.value}
_BLOCKED = {HealthStatus.CONFLICT.value, HealthStatus.STALE.value, HealthStatus.CI_RED.value}


def open_pr_entry(pr: CodeflowPR, health: Optional[PRHealth]) -> dict:
    """Backflow entry for a branch with an open PR."""
    entry: dict = {
        "branch": pr.branch,
        "prNumber": pr.number,
        "prState": "open",
    }
    if health is None:
        entry["status"] = UNKNOWN_STATUS
    else:
        entry.update(health.to_dict())
    return entry


def forward_pr_entry(pr: CodeflowPR, health: Optional[PRHealth]) -> dict:
    entry: dict = {
        "prNumber": pr.number,
        "branch": pr.branch,
        "title": pr.title,
    }
    if health is None:
        entry["status"] = UNKNOWN_STATUS
    else:
        entry.update(health.to_dict(include_body_fields=False))
    return entry


def summarize_backflow(entries: list[dict]) -> BackflowSummary:
    """Bucket backflow entries by status.

    "unknown" entries fall into no bucket.
    """
    summary = BackflowSummary()
    for entry in entries:
        status = entry.get("status")
        if status == HealthStatus.HEALTHY.value:
            summary.healthy += 1
        elif status in _UP_TO_DATE:
            summary.up_to_date += 1
        elif status in _BLOCKED:
            summary.blocked += 1
        elif status == BranchState.MISSING.value:
            summary.missing += 1
    return summary


def summarize_forward_flow(entries: list[dict]) -> ForwardFlowSummary:
    summary = ForwardFlowSummary()
    for entry in entries:
        status = entry.get("status")
        if status == HealthStatus.HEALTHY.value:
            summary.healthy += 1
        elif status == HealthStatus.STALE.value:
            summary.stale += 1
        elif status == HealthStatus.CONFLICT.value:
            summary.conflicted += 1
        elif status == HealthStatus.CI_RED.value:
            summary.ci_red += 1
    return summary


def build_report(
    repository: str,
    open_prs: list[CodeflowPR],
    open_health: dict[int, PRHealth],
    branch_statuses: list[BranchStatus],
    forward_prs: list[CodeflowPR],
    forward_health: dict[int, PRHealth],
) -> Report:
    """Merge per-branch and per-PR results into the final report.

    Backflow entries are sorted by branch name. Forward-flow entries keep
    discovery order.

    Args:
        repository: owner/name of the component repository.
        open_prs: Open backflow PRs, at most one per branch.
        open_health: PR number -> health, for PRs whose fetch succeeded.
        branch_statuses: Reconciled branches that have no open PR.
        forward_prs: Open forward-flow PRs in discovery order.
        forward_health: PR number -> health for forward-flow PRs.
    """
    backflow = [open_pr_entry(pr, open_health.get(pr.number)) for pr in open_prs]
    open_branches = {pr.branch for pr in open_prs}
    backflow.extend(
        status.to_dict() for status in branch_statuses
        if status.branch not in open_branches
    )
    backflow.sort(key=lambda entry: entry["branch"])

    forward = [forward_pr_entry(pr, forward_health.get(pr.number)) for pr in forward_prs]

    return Report(
        repository=repository,
        backflow=backflow,
        forward_flow=forward,
        backflow_summary=summarize_backflow(backflow),
        forward_summary=summarize_forward_flow(forward),
    )


def status_line(report: Report) -> str:
    """One-line human summary of the problems in a report."""
    bf = report.backflow_summary
    ff = report.forward_summary
    problems = bf.blocked + bf.missing
    if problems == 0 and ff.stale == 0 and ff.conflicted == 0 and ff.ci_red == 0:
        return (
            f"OK {report.repository}: {len(report.backflow)} branches healthy, "
            f"{len(report.forward_flow)} forward flow PRs"
        )
    return (
        f"WARNING {report.repository}: {problems} backflow issues "
        f"({bf.blocked} blocked, {bf.missing} missing), "
        f"{ff.stale + ff.conflicted + ff.ci_red} forward flow issues"
    )
