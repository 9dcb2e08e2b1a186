#!/usr/bin/env python3
"""Codeflow health report for a dotnet component repository.

Six-phase pipeline, each phase joined before the next starts:
  Phase 1: Discover open and merged backflow PRs (gh pr list)
  Phase 2: Fetch merged PR bodies for branches without an open PR
  Phase 3: Resolve VMR branch heads and compare against flowed commits
  Phase 4: Classify open backflow PR health
  Phase 5: Discover and classify forward flow PRs
  Phase 6: Build the JSON report (stdout) and status line (stderr)
"""

import argparse
import json
import logging
import re
import sys

from codeflow_health.config import load_config
from codeflow_health.discovery import (
    find_forward_flow_prs,
    find_merged_backflow_prs,
    find_open_backflow_prs,
    latest_merged_by_branch,
)
from codeflow_health.gh_cli import gh_available
from codeflow_health.health import fetch_all_health
from codeflow_health.reconcile import reconcile_branches
from codeflow_health.report import build_report, status_line

_REPO_RE = re.compile(r"^[A-Za-z0-9_.\-]+/[A-Za-z0-9_.\-]+$")

USAGE = "Usage: codeflow-health <owner/repo> [--branch <name>]"


def _parse_args(argv):
    parser = argparse.ArgumentParser(
        prog="codeflow-health",
        description="Scan codeflow (VMR backflow and forward flow) PR health for a repository",
        add_help=True,
    )
    parser.add_argument("repository", nargs="?", default=None, help="component repository, owner/name (e.g. dotnet/runtime)")
    parser.add_argument("--branch", default=None, help="only report on this branch")
    parser.add_argument("--config", dest="config_path", default=None, help="path to YAML config file (default: ~/.config/codeflow-health/config.yaml)")
    parser.add_argument("--verbose", action="store_true", default=False, help="log failed lookups and other debug details to stderr")
    return parser.parse_args(argv)


def main(argv=None):
    args = _parse_args(argv)

    repository = args.repository
    if not repository or not _REPO_RE.match(repository):
        print(USAGE, file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not gh_available():
        print("Error: gh CLI is not installed.", file=sys.stderr)
        return 1

    cfg = load_config(args.config_path)
    branch = args.branch

    # -----------------------------------------------------------------------
    # Phase 1: discovery
    # -----------------------------------------------------------------------
    print(f"Searching for codeflow PRs in {repository}...", file=sys.stderr)
    open_prs = find_open_backflow_prs(repository, cfg, branch)
    merged_prs = find_merged_backflow_prs(repository, cfg, branch)
    print(
        f"  Found {len(open_prs)} open, {len(merged_prs)} merged codeflow PRs",
        file=sys.stderr,
    )

    # One open PR per branch; the last one listed wins
    open_by_branch = {pr.branch: pr for pr in open_prs}
    open_prs = [open_by_branch[b] for b in sorted(open_by_branch)]

    last_merged = {
        b: pr for b, pr in latest_merged_by_branch(merged_prs).items()
        if b not in open_by_branch
    }

    # -----------------------------------------------------------------------
    # Phases 2-3: reconcile branches without an open PR
    # -----------------------------------------------------------------------
    print("Fetching PR metadata and comparing VMR branch HEADs...", file=sys.stderr)
    branch_statuses = reconcile_branches(last_merged, repository, cfg)

    # -----------------------------------------------------------------------
    # Phase 4: open backflow PR health
    # -----------------------------------------------------------------------
    print("Checking open backflow PR health...", file=sys.stderr)
    open_health = fetch_all_health(open_prs, repository, cfg)

    # -----------------------------------------------------------------------
    # Phase 5: forward flow
    # -----------------------------------------------------------------------
    print("Scanning forward flow PRs...", file=sys.stderr)
    forward_prs = find_forward_flow_prs(repository, cfg, branch)
    forward_health = fetch_all_health(forward_prs, cfg.vmr_repository, cfg)

    # -----------------------------------------------------------------------
    # Phase 6: report
    # -----------------------------------------------------------------------
    report = build_report(
        repository,
        open_prs,
        open_health,
        branch_statuses,
        forward_prs,
        forward_health,
    )
    print(status_line(report), file=sys.stderr)
    print(json.dumps(report.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
