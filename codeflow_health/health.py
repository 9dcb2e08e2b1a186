"""Open codeflow PR health classification.

A PR's health comes from three signals read off `gh pr view`:

- mergeability and Maestro "Conflict detected" comments (conflict),
- Maestro comments saying the flow cannot continue (stale),
- the statusCheckRollup (CI).

They are checked in that order and the first one that fires decides the
status, so a conflicting PR with red CI is reported as "conflict".
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from codeflow_health.config import Config
from codeflow_health.gh_cli import gh_json_object, run_parallel
from codeflow_health.models import CIStatus, CodeflowPR, FlowDirection, HealthStatus, PRHealth
from codeflow_health.reconcile import extract_vmr_metadata

logger = logging.getLogger("codeflow_health.health")

CONFLICT_MARKER = "Conflict detected"
STALENESS_MARKERS = (
    "codeflow cannot continue",
    "the source repository has received code changes",
)

_FAILED = {"FAILURE", "ERROR"}
_PENDING = {"IN_PROGRESS", "QUEUED", "PENDING"}

_SUBSCRIPTION_RE = re.compile(r"\(Begin:([a-f0-9\-]+)\)")

BACKFLOW_FIELDS = "body,comments,updatedAt,mergeable,statusCheckRollup"
FORWARD_FIELDS = "comments,mergeable,statusCheckRollup"


def _field(entry: dict, name: str) -> str:
    value = entry.get(name)
    return value if isinstance(value, str) else ""


def classify_ci(rollup) -> tuple[CIStatus, int, int]:
    """Aggregate a statusCheckRollup into one CI status.

    Check runs report conclusion/status; legacy status contexts report
    state. A context is failed if either says FAILURE or ERROR, otherwise
    pending if still running, otherwise it counts as green.

    Returns:
        (ci_status, failed_count, total_count). An empty or missing rollup
        is CIStatus.NONE with zero counts.
    """
    if not isinstance(rollup, list) or not rollup:
        return CIStatus.NONE, 0, 0

    failed = pending = 0
    for ctx in rollup:
        if not isinstance(ctx, dict):
            continue
        conclusion = _field(ctx, "conclusion")
        status = _field(ctx, "status")
        state = _field(ctx, "state")
        if conclusion in _FAILED or state in _FAILED:
            failed += 1
        elif status in _PENDING or state == "PENDING":
            pending += 1

    if failed:
        return CIStatus.RED, failed, len(rollup)
    if pending:
        return CIStatus.PENDING, 0, len(rollup)
    return CIStatus.GREEN, 0, len(rollup)


def scan_bot_comments(comments, bot_login_prefix: str) -> tuple[bool, bool]:
    """Look for conflict and staleness notices in bot comments.

    Comments from anyone whose login does not start with the bot prefix
    are ignored.

    Returns:
        (conflict_reported, staleness_reported)
    """
    conflict = stale = False
    for comment in comments if isinstance(comments, list) else []:
        if not isinstance(comment, dict):
            continue
        author = comment.get("author")
        login = _field(author, "login") if isinstance(author, dict) else ""
        if not login.startswith(bot_login_prefix):
            continue
        body = _field(comment, "body")
        if any(marker in body for marker in STALENESS_MARKERS):
            stale = True
        if CONFLICT_MARKER in body:
            conflict = True
    return conflict, stale


def decide_status(has_conflict: bool, has_staleness: bool, ci_status: CIStatus) -> HealthStatus:
    if has_conflict:
        return HealthStatus.CONFLICT
    if has_staleness:
        return HealthStatus.STALE
    if ci_status is CIStatus.RED:
        return HealthStatus.CI_RED
    return HealthStatus.HEALTHY


def classify_pr(detail: dict, bot_login_prefix: str, direction: FlowDirection) -> PRHealth:
    """Classify one PR from its `gh pr view --json` payload.

    Backflow PRs also carry the Maestro subscription id and the VMR source
    branch from the PR body.
    """
    comment_conflict, has_staleness = scan_bot_comments(
        detail.get("comments"), bot_login_prefix,
    )
    has_conflict = detail.get("mergeable") == "CONFLICTING" or comment_conflict
    ci_status, failed, total = classify_ci(detail.get("statusCheckRollup"))

    health = PRHealth(
        status=decide_status(has_conflict, has_staleness, ci_status),
        has_conflict=has_conflict,
        has_staleness=has_staleness,
        ci_status=ci_status,
    )
    if ci_status is CIStatus.RED:
        health.ci_failed_count = failed
        health.ci_total_count = total

    if direction is FlowDirection.BACKFLOW:
        body = _field(detail, "body")
        match = _SUBSCRIPTION_RE.search(body)
        if match:
            health.subscription_id = match.group(1)
        health.vmr_branch = extract_vmr_metadata(body).branch
    return health


def fetch_pr_health(pr: CodeflowPR, repository: str, cfg: Config) -> Optional[PRHealth]:
    """Fetch and classify a single PR. None if the fetch failed."""
    fields = BACKFLOW_FIELDS if pr.direction is FlowDirection.BACKFLOW else FORWARD_FIELDS
    detail = gh_json_object(
        ["pr", "view", str(pr.number), "-R", repository, "--json", fields],
        timeout=cfg.health_timeout,
    )
    if detail is None:
        logger.debug("No health data for %s#%d", repository, pr.number)
        return None
    return classify_pr(detail, cfg.bot_login_prefix, pr.direction)


def fetch_all_health(
    prs: list[CodeflowPR],
    repository: str,
    cfg: Config,
) -> dict[int, PRHealth]:
    """Fetch health for every PR concurrently, keyed by PR number.

    A PR whose fetch fails is simply missing from the result; the report
    shows it as "unknown".
    """
    return run_parallel({
        pr.number: (lambda pr=pr: fetch_pr_health(pr, repository, cfg))
        for pr in prs
    })
