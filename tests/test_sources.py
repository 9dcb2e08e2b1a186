"""Tests for asset discovery in the source repository."""

from unittest.mock import MagicMock, patch

import pytest

from asset_sync import sources
from asset_sync.sources import (
    FLAT_PLUGIN,
    SourceAsset,
    find_agents,
    find_skills,
    get_github_user,
    plugin_names,
    read_plugin_servers,
    resolve_duplicates,
)
from conftest import write


@pytest.fixture(autouse=True)
def _clear_gh_user_cache(monkeypatch):
    monkeypatch.setattr(sources, "_gh_user_cache", {})


def _marketplace(repo):
    write(repo / "plugins" / "alice" / "skills" / "review" / "SKILL.md", "alice review")
    write(repo / "plugins" / "alice" / "agents" / "planner.agent.md", "planner")
    write(repo / "plugins" / "Team" / "skills" / "review" / "SKILL.md", "team review")
    write(repo / "plugins" / "Team" / "skills" / "deploy" / "SKILL.md", "deploy")
    # no SKILL.md: not a skill
    (repo / "plugins" / "Team" / "skills" / "notes").mkdir(parents=True)
    write(repo / "plugins" / "Team" / "agents" / "README.md", "ignored")


class TestFind:

    def test_plugin_names_sorted_case_insensitive(self, sync_env):
        repo, _, _ = sync_env
        _marketplace(repo)
        assert plugin_names(repo) == ["alice", "Team"]
        assert plugin_names(repo, "team") == ["Team"]
        assert plugin_names(repo, "nobody") == []

    def test_marketplace_skills(self, sync_env):
        repo, _, _ = sync_env
        _marketplace(repo)
        found = [(a.plugin, a.name) for a in find_skills(repo)]
        assert found == [("alice", "review"), ("Team", "deploy"), ("Team", "review")]

    def test_filters(self, sync_env):
        repo, _, _ = sync_env
        _marketplace(repo)
        assert [a.plugin for a in find_skills(repo, "ALICE")] == ["alice"]
        assert [a.plugin for a in find_skills(repo, None, "Review")] == ["alice", "Team"]

    def test_agents_strip_suffix(self, sync_env):
        repo, _, _ = sync_env
        _marketplace(repo)
        agents = find_agents(repo)
        assert [(a.plugin, a.name, a.path.name) for a in agents] == [
            ("alice", "planner", "planner.agent.md"),
        ]

    def test_dotted_agent_name(self, sync_env):
        repo, _, _ = sync_env
        write(repo / "agents" / "foo.v2.agent.md", "v2")
        assert [a.name for a in find_agents(repo)] == ["foo.v2"]
        assert [a.name for a in find_agents(repo, None, "FOO.V2")] == ["foo.v2"]
        assert find_agents(repo, None, "foo") == []

    def test_flat_layout(self, sync_env):
        repo, _, _ = sync_env
        write(repo / "skills" / "lint" / "SKILL.md")
        write(repo / "agents" / "helper.agent.md")
        assert [(a.plugin, a.name) for a in find_skills(repo)] == [(FLAT_PLUGIN, "lint")]
        assert [a.name for a in find_agents(repo)] == ["helper"]

    def test_empty_repo(self, sync_env):
        repo, _, _ = sync_env
        assert find_skills(repo) == []
        assert plugin_names(repo) == []


class TestReadPluginServers:

    def test_reads_jsonc_manifest(self, sync_env):
        repo, _, _ = sync_env
        write(repo / "plugins" / "p" / "plugin.json", """{
            // servers
            "mcpServers": {"gh": {"command": "gh-mcp"}},
            "lspServers": {"py": {"command": "pylsp"},},
        }""")
        mcp, lsp = read_plugin_servers(repo, "p")
        assert mcp == {"gh": {"command": "gh-mcp"}}
        assert lsp == {"py": {"command": "pylsp"}}

    def test_missing_or_broken(self, sync_env, capsys):
        repo, _, _ = sync_env
        assert read_plugin_servers(repo, "p") == ({}, {})
        write(repo / "plugins" / "p" / "plugin.json", "{broken")
        assert read_plugin_servers(repo, "p") == ({}, {})
        assert "cannot parse" in capsys.readouterr().err


class TestGetGithubUser:

    @patch("asset_sync.sources.subprocess.run")
    def test_cached(self, mock_run):
        mock_run.return_value = MagicMock(stdout="alice\n", returncode=0)
        assert get_github_user() == "alice"
        assert get_github_user() == "alice"
        mock_run.assert_called_once()
        assert mock_run.call_args[0][0] == ["gh", "api", "user", "--jq", ".login"]

    @patch("asset_sync.sources.subprocess.run", side_effect=FileNotFoundError("gh"))
    def test_missing_gh(self, mock_run):
        assert get_github_user() is None


class TestResolveDuplicates:

    def _assets(self, tmp_path):
        return [
            SourceAsset("alice", "review", tmp_path / "a"),
            SourceAsset("Team", "deploy", tmp_path / "b"),
            SourceAsset("Team", "Review", tmp_path / "c"),
        ]

    def test_no_duplicates_skips_user_lookup(self, tmp_path):
        assets = self._assets(tmp_path)[:2]

        def fail():
            raise AssertionError("user lookup not expected")

        assert resolve_duplicates(assets, get_user=fail) == assets

    def test_personal_plugin_wins(self, tmp_path, capsys):
        assets = self._assets(tmp_path)
        result = resolve_duplicates(assets, get_user=lambda: "Alice")
        assert [(a.plugin, a.name) for a in result] == [("alice", "review"), ("Team", "deploy")]
        assert "using personal plugin 'alice'" in capsys.readouterr().out

    def test_ambiguous_duplicates_skipped(self, tmp_path, capsys):
        assets = self._assets(tmp_path)
        result = resolve_duplicates(assets, get_user=lambda: None)
        assert [a.name for a in result] == ["deploy"]
        assert "Use --plugin to select one" in capsys.readouterr().out
