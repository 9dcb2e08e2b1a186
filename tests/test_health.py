"""Tests for open PR health classification."""

from unittest.mock import patch

import pytest

from codeflow_health.health import (
    classify_ci,
    classify_pr,
    decide_status,
    fetch_all_health,
    scan_bot_comments,
)
from codeflow_health.models import CIStatus, CodeflowPR, FlowDirection, HealthStatus, PRState
from conftest import gh_result

BOT = "dotnet-maestro"


def _comment(body, login="dotnet-maestro[bot]"):
    return {"author": {"login": login}, "body": body}


def _open_pr(number, branch="main", direction=FlowDirection.BACKFLOW):
    return CodeflowPR(
        number=number,
        title=f"[{branch}] Source code updates from dotnet/dotnet",
        branch=branch,
        direction=direction,
        state=PRState.OPEN,
    )


# ---------------------------------------------------------------------------
# classify_ci
# ---------------------------------------------------------------------------

class TestClassifyCi:

    def test_empty_rollup(self):
        assert classify_ci([]) == (CIStatus.NONE, 0, 0)
        assert classify_ci(None) == (CIStatus.NONE, 0, 0)

    def test_all_success(self):
        rollup = [
            {"conclusion": "SUCCESS", "status": "COMPLETED"},
            {"state": "SUCCESS"},
        ]
        assert classify_ci(rollup) == (CIStatus.GREEN, 0, 2)

    def test_failure_by_conclusion(self):
        rollup = [
            {"conclusion": "FAILURE", "status": "COMPLETED"},
            {"conclusion": "SUCCESS", "status": "COMPLETED"},
            {"status": "IN_PROGRESS"},
        ]
        assert classify_ci(rollup) == (CIStatus.RED, 1, 3)

    def test_error_state_counts_as_failed(self):
        assert classify_ci([{"state": "ERROR"}]) == (CIStatus.RED, 1, 1)

    @pytest.mark.parametrize("ctx", [
        {"status": "IN_PROGRESS"},
        {"status": "QUEUED"},
        {"status": "PENDING"},
        {"state": "PENDING"},
    ])
    def test_pending(self, ctx):
        rollup = [ctx, {"conclusion": "SUCCESS", "status": "COMPLETED"}]
        assert classify_ci(rollup) == (CIStatus.PENDING, 0, 2)

    def test_skipped_and_neutral_are_green(self):
        rollup = [{"conclusion": "SKIPPED"}, {"conclusion": "NEUTRAL"}]
        assert classify_ci(rollup)[0] is CIStatus.GREEN


# ---------------------------------------------------------------------------
# scan_bot_comments / decide_status
# ---------------------------------------------------------------------------

class TestScanBotComments:

    def test_conflict(self):
        comments = [_comment("Conflict detected in src/foo.cs")]
        assert scan_bot_comments(comments, BOT) == (True, False)

    @pytest.mark.parametrize("body", [
        "The codeflow cannot continue until this PR is merged.",
        "Note: the source repository has received code changes since this PR was opened.",
    ])
    def test_staleness(self, body):
        assert scan_bot_comments([_comment(body)], BOT) == (False, True)

    def test_human_comments_ignored(self):
        comments = [_comment("Conflict detected", login="octocat")]
        assert scan_bot_comments(comments, BOT) == (False, False)

    def test_malformed_comments(self):
        comments = ["text", {"author": None, "body": "Conflict detected"}, {"body": None}]
        assert scan_bot_comments(comments, BOT) == (False, False)
        assert scan_bot_comments(None, BOT) == (False, False)


class TestDecideStatus:

    def test_precedence(self):
        assert decide_status(True, True, CIStatus.RED) is HealthStatus.CONFLICT
        assert decide_status(False, True, CIStatus.RED) is HealthStatus.STALE
        assert decide_status(False, False, CIStatus.RED) is HealthStatus.CI_RED
        assert decide_status(False, False, CIStatus.PENDING) is HealthStatus.HEALTHY
        assert decide_status(False, False, CIStatus.NONE) is HealthStatus.HEALTHY


# ---------------------------------------------------------------------------
# classify_pr
# ---------------------------------------------------------------------------

class TestClassifyPr:

    def test_conflicting_mergeable_beats_red_ci(self):
        detail = {
            "mergeable": "CONFLICTING",
            "comments": [],
            "statusCheckRollup": [{"conclusion": "FAILURE"}],
        }
        health = classify_pr(detail, BOT, FlowDirection.FORWARD)
        assert health.status is HealthStatus.CONFLICT
        assert health.has_conflict is True
        assert health.ci_status is CIStatus.RED

    def test_stale_and_red_is_stale(self):
        detail = {
            "mergeable": "MERGEABLE",
            "comments": [_comment("codeflow cannot continue")],
            "statusCheckRollup": [
                {"conclusion": "FAILURE"},
                {"conclusion": "SUCCESS"},
                {"conclusion": "SUCCESS"},
            ],
        }
        health = classify_pr(detail, BOT, FlowDirection.FORWARD)
        assert health.status is HealthStatus.STALE
        assert health.ci_failed_count == 1
        assert health.ci_total_count == 3

    def test_pending_only_is_healthy_without_counts(self):
        detail = {"mergeable": "MERGEABLE", "statusCheckRollup": [{"status": "IN_PROGRESS"}]}
        health = classify_pr(detail, BOT, FlowDirection.FORWARD)
        assert health.status is HealthStatus.HEALTHY
        assert health.ci_status is CIStatus.PENDING
        assert health.ci_failed_count is None
        assert "ciFailedCount" not in health.to_dict()

    def test_backflow_body_fields(self):
        detail = {
            "body": (
                "[marker]: <> (Begin:8a4f1c2e-1234-4bcd-9ef0-0123456789ab)\n"
                "- **Branch**: [release/9.0.1xx-preview4]\n"
                "- **Commit**: [abc123]\n"
            ),
            "mergeable": "MERGEABLE",
            "statusCheckRollup": [],
        }
        health = classify_pr(detail, BOT, FlowDirection.BACKFLOW)
        assert health.subscription_id == "8a4f1c2e-1234-4bcd-9ef0-0123456789ab"
        assert health.vmr_branch == "release/9.0.1xx-preview4"
        out = health.to_dict()
        assert out["subscriptionId"] == "8a4f1c2e-1234-4bcd-9ef0-0123456789ab"
        assert out["vmrBranch"] == "release/9.0.1xx-preview4"
        assert out["ciStatus"] == "none"

    def test_forward_ignores_body(self):
        detail = {"body": "- **Branch**: [main]", "statusCheckRollup": []}
        health = classify_pr(detail, BOT, FlowDirection.FORWARD)
        assert health.vmr_branch is None
        assert health.subscription_id is None


# ---------------------------------------------------------------------------
# fetch_all_health
# ---------------------------------------------------------------------------

class TestFetchAllHealth:

    @patch("codeflow_health.gh_cli.subprocess.run")
    def test_failed_fetch_is_absent(self, mock_run, cfg):
        def fake_run(cmd, **kwargs):
            number = cmd[cmd.index("view") + 1]
            if number == "2":
                return gh_result(returncode=1)
            return gh_result({"mergeable": "MERGEABLE", "comments": [], "statusCheckRollup": []})

        mock_run.side_effect = fake_run
        result = fetch_all_health([_open_pr(1), _open_pr(2, "release/9.0")], "dotnet/runtime", cfg)
        assert set(result) == {1}
        assert result[1].status is HealthStatus.HEALTHY

    @patch("codeflow_health.gh_cli.subprocess.run")
    def test_fields_by_direction(self, mock_run, cfg):
        mock_run.return_value = gh_result({"statusCheckRollup": []})
        fetch_all_health([_open_pr(7, direction=FlowDirection.FORWARD)], "dotnet/dotnet", cfg)
        cmd = mock_run.call_args[0][0]
        assert cmd == [
            "gh", "pr", "view", "7", "-R", "dotnet/dotnet",
            "--json", "comments,mergeable,statusCheckRollup",
        ]
        assert mock_run.call_args[1]["timeout"] == 60

        fetch_all_health([_open_pr(8)], "dotnet/runtime", cfg)
        cmd = mock_run.call_args[0][0]
        assert cmd[-1] == "body,comments,updatedAt,mergeable,statusCheckRollup"

    def test_empty(self, cfg):
        assert fetch_all_health([], "dotnet/runtime", cfg) == {}
