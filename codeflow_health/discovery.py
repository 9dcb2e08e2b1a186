"""Codeflow PR discovery via gh pr list searches."""

from __future__ import annotations

import re
from typing import Callable, Optional

from codeflow_health.config import Config
from codeflow_health.gh_cli import RetryPolicy, gh_json_list
from codeflow_health.models import CodeflowPR, FlowDirection, PRState

# Codeflow titles look like "[release/9.0] Source code updates from dotnet/dotnet"
_BRANCH_PREFIX_RE = re.compile(r"^\[([^\]]+)\]")


def parse_branch(title: str) -> Optional[str]:
    """Extract the target branch from a bracketed title prefix."""
    match = _BRANCH_PREFIX_RE.match(title or "")
    return match.group(1) if match else None


def repo_short_name(repository: str) -> str:
    """Strip the owner from an owner/name repository identifier."""
    return repository.split("/", 1)[-1]


def _pr_number(pr: dict) -> int:
    number = pr.get("number")
    if isinstance(number, bool) or not isinstance(number, int):
        return 0
    return number


def _parse_open_prs(
    raw: Optional[list],
    marker: str,
    direction: FlowDirection,
    branch_filter: Optional[str],
    default_branch: Optional[str] = None,
) -> list[CodeflowPR]:
    prs: list[CodeflowPR] = []
    for pr in raw or []:
        if not isinstance(pr, dict):
            continue
        title = pr.get("title") or ""
        if marker not in title:
            continue
        number = _pr_number(pr)
        branch = parse_branch(title) or default_branch
        if number <= 0 or branch is None:
            continue
        if branch_filter is not None and branch != branch_filter:
            continue
        prs.append(CodeflowPR(
            number=number,
            title=title,
            branch=branch,
            direction=direction,
            state=PRState.OPEN,
        ))
    return prs


def find_open_backflow_prs(
    repository: str,
    cfg: Config,
    branch_filter: Optional[str] = None,
) -> list[CodeflowPR]:
    """List open backflow PRs (VMR -> repository) with a branch prefix.

    The author filter goes into --search rather than --author so the
    "app/" bot qualifier is passed through unchanged.
    """
    raw = gh_json_list([
        "pr", "list", "--repo", repository,
        "--search", f"author:{cfg.bot_author}",
        "--state", "open",
        "--json", "number,title",
        "--limit", str(cfg.open_limit),
    ], timeout=cfg.gh_timeout)
    return _parse_open_prs(raw, cfg.backflow_marker, FlowDirection.BACKFLOW, branch_filter)


def _search_merged_backflow_prs(
    repository: str,
    cfg: Config,
    branch_filter: Optional[str],
) -> list[CodeflowPR]:
    raw = gh_json_list([
        "pr", "list", "--repo", repository,
        "--search", f"author:{cfg.bot_author} {cfg.backflow_marker}",
        "--state", "merged",
        "--json", "number,title,closedAt",
        "--limit", str(cfg.merged_limit),
    ], timeout=cfg.gh_timeout)

    prs: list[CodeflowPR] = []
    for pr in raw or []:
        if not isinstance(pr, dict):
            continue
        title = pr.get("title") or ""
        number = _pr_number(pr)
        branch = parse_branch(title)
        if number <= 0 or branch is None:
            continue
        if branch_filter is not None and branch != branch_filter:
            continue
        closed_at = pr.get("closedAt")
        prs.append(CodeflowPR(
            number=number,
            title=title,
            branch=branch,
            direction=FlowDirection.BACKFLOW,
            state=PRState.MERGED,
            closed_at=closed_at if isinstance(closed_at, str) else None,
        ))
    return prs


def find_merged_backflow_prs(
    repository: str,
    cfg: Config,
    branch_filter: Optional[str] = None,
    policy: Optional[RetryPolicy] = None,
    search: Optional[Callable[[], list[CodeflowPR]]] = None,
) -> list[CodeflowPR]:
    """List merged backflow PRs, retrying while the search comes back empty.

    The search index lags behind merges. An empty result after every
    attempt is accepted as "no merged PRs", not treated as an error.

    Args:
        repository: owner/name of the component repository.
        cfg: Application configuration.
        branch_filter: Only keep PRs targeting this branch.
        policy: Retry policy; defaults to cfg.merged_retries attempts
            spaced cfg.retry_delay_seconds apart.
        search: Override for the query itself (used by tests).
    """
    if policy is None:
        policy = RetryPolicy(
            max_attempts=cfg.merged_retries,
            delay=cfg.retry_delay_seconds,
        )
    if search is None:
        def search():
            return _search_merged_backflow_prs(repository, cfg, branch_filter)
    return policy.run(search) or []


def latest_merged_by_branch(prs: list[CodeflowPR]) -> dict[str, CodeflowPR]:
    """Keep the most recently closed merged PR per branch.

    ISO-8601 UTC timestamps sort lexically in chronological order, so plain
    string comparison is enough. A PR without closedAt never replaces one
    that has it.
    """
    latest: dict[str, CodeflowPR] = {}
    for pr in prs:
        current = latest.get(pr.branch)
        if current is None or (pr.closed_at or "") > (current.closed_at or ""):
            latest[pr.branch] = pr
    return latest


def find_forward_flow_prs(
    repository: str,
    cfg: Config,
    branch_filter: Optional[str] = None,
) -> list[CodeflowPR]:
    """List open forward-flow PRs (repository -> VMR), in search order.

    Only titles ending in the repository's own marker are kept, so that
    e.g. dotnet/runtime does not pick up PRs from dotnet/runtime-assets.
    Titles without a "[branch]" prefix get branch "unknown".
    """
    marker = cfg.forward_flow_marker(repo_short_name(repository))
    raw = gh_json_list([
        "pr", "list", "--repo", cfg.vmr_repository,
        "--search", f"author:{cfg.bot_author} {marker}",
        "--state", "open",
        "--json", "number,title",
        "--limit", str(cfg.forward_limit),
    ], timeout=cfg.gh_timeout)

    suffix_re = re.compile(re.escape(marker) + r"$")
    matching = [
        pr for pr in raw or []
        if isinstance(pr, dict) and suffix_re.search(pr.get("title") or "")
    ]
    return _parse_open_prs(
        matching, marker, FlowDirection.FORWARD, branch_filter,
        default_branch="unknown",
    )
