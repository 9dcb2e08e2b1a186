"""Reconcile backflow branches that have no open PR against the VMR.

For each such branch, the last merged backflow PR body names the VMR branch
and commit it was built from. Comparing that commit with the current head of
the VMR branch tells whether a new backflow PR is overdue.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from codeflow_health.config import Config
from codeflow_health.gh_cli import gh_json_object, run_parallel
from codeflow_health.models import (
    AHEAD_UNRESOLVED,
    BranchState,
    BranchStatus,
    CodeflowPR,
    VmrHead,
    VmrMetadata,
)

logger = logging.getLogger("codeflow_health.reconcile")

_VMR_BRANCH_RE = re.compile(r"\*\*Branch\*\*:\s*\[([^\]]+)\]")
_VMR_COMMIT_RE = re.compile(r"\*\*Commit\*\*:\s*\[([a-fA-F0-9]+)\]")


def extract_vmr_metadata(body: str) -> VmrMetadata:
    """Pull the "**Branch**: [x]" and "**Commit**: [sha]" fields from a PR body."""
    body = body or ""
    branch = _VMR_BRANCH_RE.search(body)
    commit = _VMR_COMMIT_RE.search(body)
    return VmrMetadata(
        branch=branch.group(1) if branch else None,
        commit=commit.group(1) if commit else None,
    )


def commits_match(a: str, b: str) -> bool:
    """True if one SHA is a prefix of the other (short vs full SHA)."""
    if not a or not b:
        return False
    a, b = a.lower(), b.lower()
    return a.startswith(b) or b.startswith(a)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a GitHub ISO-8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def hours_since(closed_at: Optional[str], now: datetime) -> Optional[float]:
    merged = parse_timestamp(closed_at)
    if merged is None:
        return None
    return round((now - merged).total_seconds() / 3600, 1)


def is_released_preview(
    vmr_branch: Optional[str],
    closed_at: Optional[str],
    now: datetime,
    threshold_days: int,
) -> bool:
    """A preview branch untouched for longer than the threshold.

    Matching is a plain "preview" substring check on the VMR branch name.
    Once a preview ships its VMR branch keeps moving without being flowed
    back, so divergence there is expected.
    """
    if not vmr_branch or "preview" not in vmr_branch:
        return False
    merged = parse_timestamp(closed_at)
    if merged is None:
        return False
    return (now - merged).total_seconds() > threshold_days * 86400


def classify_branch(
    merged_pr: CodeflowPR,
    metadata: Optional[VmrMetadata],
    head: Optional[VmrHead],
    ahead_by: Optional[int],
    now: datetime,
    threshold_days: int,
) -> BranchStatus:
    """Decide the status of one branch from already-fetched data.

    Args:
        merged_pr: Most recent merged backflow PR for the branch.
        metadata: VMR branch/commit from its body, None if the body fetch
            failed.
        head: Current head of the VMR branch, None if unresolved.
        ahead_by: Commits on the VMR branch since the flowed commit, None
            if the comparison was not made or failed.
        now: Reference time for age checks.
        threshold_days: Age after which a preview branch counts as released.
    """
    metadata = metadata or VmrMetadata()
    result = BranchStatus(
        branch=merged_pr.branch,
        last_merged_pr=merged_pr.number,
        last_merged_at=merged_pr.closed_at,
        status=BranchState.UNKNOWN,
        vmr_branch=metadata.branch,
        vmr_commit=metadata.commit,
    )
    if metadata.branch is None or metadata.commit is None or head is None:
        return result

    result.head_sha = head.sha
    result.head_date = head.date

    if commits_match(head.sha, metadata.commit):
        result.status = BranchState.UP_TO_DATE
        result.ahead_by = 0
        return result

    result.ahead_by = ahead_by if ahead_by is not None else AHEAD_UNRESOLVED
    if is_released_preview(metadata.branch, merged_pr.closed_at, now, threshold_days):
        result.status = BranchState.RELEASED_PREVIEW
    else:
        result.status = BranchState.MISSING
        result.hours_since_last_merge = hours_since(merged_pr.closed_at, now)
    return result


def parse_head(commit: dict) -> Optional[VmrHead]:
    """Build a VmrHead from a `GET /repos/{vmr}/commits/{ref}` payload."""
    sha = commit.get("sha")
    if not isinstance(sha, str) or not sha:
        return None
    inner = commit.get("commit")
    committer = inner.get("committer") if isinstance(inner, dict) else None
    date = committer.get("date") if isinstance(committer, dict) else None
    return VmrHead(sha=sha, date=date if isinstance(date, str) else None)


def parse_ahead_by(comparison: dict) -> Optional[int]:
    ahead = comparison.get("ahead_by")
    if isinstance(ahead, bool) or not isinstance(ahead, int):
        return None
    return ahead


def _fetch_metadata(pr: CodeflowPR, repository: str, cfg: Config) -> Optional[VmrMetadata]:
    data = gh_json_object(
        ["pr", "view", str(pr.number), "-R", repository, "--json", "body"],
        timeout=cfg.gh_timeout,
    )
    if data is None:
        logger.debug("Could not fetch body of %s#%d", repository, pr.number)
        return None
    body = data.get("body")
    return extract_vmr_metadata(body if isinstance(body, str) else "")


def _fetch_head(vmr_branch: str, cfg: Config) -> Optional[VmrHead]:
    encoded = quote(vmr_branch, safe="")
    data = gh_json_object(
        ["api", f"/repos/{cfg.vmr_repository}/commits/{encoded}"],
        timeout=cfg.health_timeout,
    )
    if data is None:
        logger.debug("Could not resolve head of %s:%s", cfg.vmr_repository, vmr_branch)
        return None
    return parse_head(data)


def _fetch_ahead_by(base: str, head: str, cfg: Config) -> Optional[int]:
    data = gh_json_object(
        ["api", f"/repos/{cfg.vmr_repository}/compare/{base}...{head}"],
        timeout=cfg.health_timeout,
    )
    if data is None:
        logger.debug("Compare %s...%s failed", base, head)
        return None
    return parse_ahead_by(data)


def reconcile_branches(
    merged: dict[str, CodeflowPR],
    repository: str,
    cfg: Config,
    now: Optional[datetime] = None,
) -> list[BranchStatus]:
    """Reconcile each branch's last merged PR against its VMR branch head.

    Runs three fetch phases, each fanned out across branches and fully
    joined before the next starts: merged PR bodies, VMR heads, then
    compares for heads that moved. Failures in any phase only affect the
    branch they belong to.

    Args:
        merged: Branch name -> last merged PR, for branches with no open PR.
        repository: owner/name of the component repository.
        cfg: Application configuration.
        now: Reference time (defaults to the current UTC time).

    Returns:
        One BranchStatus per branch, ordered by branch name.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    metadata = run_parallel({
        branch: (lambda pr=pr: _fetch_metadata(pr, repository, cfg))
        for branch, pr in merged.items()
    })

    heads = run_parallel({
        branch: (lambda vmr_branch=meta.branch: _fetch_head(vmr_branch, cfg))
        for branch, meta in metadata.items()
        if meta.branch is not None and meta.commit is not None
    })

    ahead_counts = run_parallel({
        branch: (lambda base=metadata[branch].commit, sha=head.sha: _fetch_ahead_by(base, sha, cfg))
        for branch, head in heads.items()
        if not commits_match(head.sha, metadata[branch].commit)
    })

    return [
        classify_branch(
            merged[branch],
            metadata.get(branch),
            heads.get(branch),
            ahead_counts.get(branch),
            now,
            cfg.preview_threshold_days,
        )
        for branch in sorted(merged)
    ]
