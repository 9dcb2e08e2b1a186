"""Structured codeflow data model, consumed by the report builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class FlowDirection(str, Enum):
    BACKFLOW = "backflow"    # VMR -> component repo
    FORWARD = "forward"      # component repo -> VMR


class PRState(str, Enum):
    OPEN = "open"
    MERGED = "merged"


class CIStatus(str, Enum):
    NONE = "none"
    GREEN = "green"
    PENDING = "pending"
    RED = "red"


class HealthStatus(str, Enum):
    """Open PR health, in precedence order (first match wins)."""
    CONFLICT = "conflict"
    STALE = "stale"
    CI_RED = "ci-red"
    HEALTHY = "healthy"


class BranchState(str, Enum):
    """Status of a backflow branch that has no open PR."""
    UP_TO_DATE = "up-to-date"
    MISSING = "missing"
    RELEASED_PREVIEW = "released-preview"
    UNKNOWN = "unknown"


# Entry status used when a health fetch failed; shared by both taxonomies.
UNKNOWN_STATUS = "unknown"

# aheadBy value recorded when the compare call could not be resolved.
AHEAD_UNRESOLVED = -1


@dataclass
class CodeflowPR:
    """A bot-authored codeflow PR found by search."""
    number: int
    title: str
    branch: str              # from the "[branch]" title prefix
    direction: FlowDirection
    state: PRState
    closed_at: Optional[str] = None  # ISO-8601, merged PRs only


@dataclass
class VmrMetadata:
    """Source references embedded in a codeflow PR body."""
    branch: Optional[str] = None   # "**Branch**: [name]"
    commit: Optional[str] = None   # "**Commit**: [sha]"


@dataclass
class VmrHead:
    """Current head of a VMR branch."""
    sha: str
    date: Optional[str] = None     # committer date


@dataclass
class PRHealth:
    """Classified health of one open codeflow PR."""
    status: HealthStatus
    has_conflict: bool
    has_staleness: bool
    ci_status: CIStatus
    ci_failed_count: Optional[int] = None   # set only when ci_status is RED
    ci_total_count: Optional[int] = None
    subscription_id: Optional[str] = None   # backflow only
    vmr_branch: Optional[str] = None        # backflow only

    def to_dict(self, include_body_fields: bool = True) -> dict:
        out: dict = {
            "status": self.status.value,
            "hasConflict": self.has_conflict,
            "hasStaleness": self.has_staleness,
            "ciStatus": self.ci_status.value,
        }
        if self.ci_failed_count is not None:
            out["ciFailedCount"] = self.ci_failed_count
            out["ciTotalCount"] = self.ci_total_count
        if include_body_fields:
            if self.subscription_id is not None:
                out["subscriptionId"] = self.subscription_id
            if self.vmr_branch is not None:
                out["vmrBranch"] = self.vmr_branch
        return out


@dataclass
class BranchStatus:
    """Reconciliation result for a backflow branch with no open PR."""
    branch: str
    last_merged_pr: int
    last_merged_at: Optional[str]
    status: BranchState
    vmr_branch: Optional[str] = None
    vmr_commit: Optional[str] = None
    head_sha: Optional[str] = None
    head_date: Optional[str] = None
    ahead_by: Optional[int] = None          # None when no head was resolved
    hours_since_last_merge: Optional[float] = None

    def to_dict(self) -> dict:
        out: dict = {
            "branch": self.branch,
            "lastMergedPR": self.last_merged_pr,
            "lastMergedAt": self.last_merged_at,
        }
        if self.vmr_branch is not None:
            out["vmrBranch"] = self.vmr_branch
        if self.vmr_commit is not None:
            out["lastVmrCommit"] = short_sha(self.vmr_commit)
        if self.head_sha is not None:
            out["vmrHeadSha"] = short_sha(self.head_sha)
            out["vmrHeadDate"] = self.head_date
        if self.ahead_by is not None:
            out["aheadBy"] = self.ahead_by
        out["status"] = self.status.value
        if self.hours_since_last_merge is not None:
            out["hoursSinceLastMerge"] = self.hours_since_last_merge
        return out


@dataclass
class BackflowSummary:
    healthy: int = 0
    up_to_date: int = 0     # up-to-date + released-preview
    blocked: int = 0        # conflict + stale + ci-red
    missing: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "healthy": self.healthy,
            "upToDate": self.up_to_date,
            "blocked": self.blocked,
            "missing": self.missing,
        }


@dataclass
class ForwardFlowSummary:
    healthy: int = 0
    stale: int = 0
    conflicted: int = 0
    ci_red: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "healthy": self.healthy,
            "stale": self.stale,
            "conflicted": self.conflicted,
            "ciRed": self.ci_red,
        }


@dataclass
class Report:
    """Complete health report for one repository."""
    repository: str
    backflow: List[dict] = field(default_factory=list)
    forward_flow: List[dict] = field(default_factory=list)
    backflow_summary: BackflowSummary = field(default_factory=BackflowSummary)
    forward_summary: ForwardFlowSummary = field(default_factory=ForwardFlowSummary)

    def to_dict(self) -> dict:
        return {
            "repository": self.repository,
            "backflow": {
                "branches": self.backflow,
                "summary": self.backflow_summary.to_dict(),
            },
            "forwardFlow": {
                "prs": self.forward_flow,
                "summary": self.forward_summary.to_dict(),
            },
        }


def short_sha(sha: str) -> str:
    return sha[:12]
