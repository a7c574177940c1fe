"""Tests for the branchsync CLI."""

import json

import pytest

from branchsync.cli import main

CLEAN_ENV = {
    "BRANCHSYNC_REPO": None,
    "BRANCHSYNC_GITHUB": None,
    "GITHUB_TOKEN": None,
    "BRANCHSYNC_BACK_SYNC": None,
}


def invoke(runner, *args, **kwargs):
    return runner.invoke(main, list(args), env=CLEAN_ENV, **kwargs)


class TestPlan:
    def test_plan(self, runner, repo_path):
        result = invoke(runner, "-r", repo_path, "plan", "production", "sgc-production")
        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == [
            "A\tassets/logo.png",
            "A\tassets/theme.css",
            "A\tconfig/settings_data.json",
            "A\tconfig/settings_schema.json",
            "A\tlayout/theme.liquid",
            "A\ttemplates/index.json",
        ]

    def test_plan_json_exclude_keep(self, runner, repo_path):
        result = invoke(runner, "-r", repo_path, "plan", "production", "sgc-production",
                        "--json", "exclude", "--keep", "config/settings_schema.json")
        assert result.exit_code == 0, result.output
        assert "A\tconfig/settings_schema.json" in result.output
        assert "settings_data.json" not in result.output
        assert "templates/index.json" not in result.output

    def test_plan_prefix(self, runner, repo_path):
        result = invoke(runner, "-r", repo_path, "plan", "production", "sgc-production", "--prefix", "layout")
        assert result.output.splitlines() == ["A\tlayout/theme.liquid"]

    def test_plan_cleanup_marker(self, runner, repo_path, theme_repo, write_branch):
        write_branch(theme_repo, "sgc-production", {"assets/new.css": b"x"})
        result = invoke(runner, "-r", repo_path, "plan", "sgc-production", "production", "--prefix", "assets")
        assert "C\tREADME.md" in result.output
        assert "D\tassets/theme.css" in result.output
        assert "A\tassets/new.css" in result.output

    def test_plan_no_cleanup(self, runner, repo_path, theme_repo, write_branch):
        write_branch(theme_repo, "sgc-production", {"assets/new.css": b"x"})
        result = invoke(runner, "-r", repo_path, "plan", "sgc-production", "production",
                        "--prefix", "assets", "--no-cleanup")
        assert "D\tassets/theme.css" in result.output
        assert "C\t" not in result.output

    def test_plan_empty_filtered_source(self, runner, repo_path, theme_repo, write_branch):
        write_branch(theme_repo, "tooling", {"README.md": b"x"})
        result = invoke(runner, "-r", repo_path, "plan", "tooling", "production")
        assert result.exit_code == 0, result.output
        assert "No files in tooling match the filter" in result.output
        assert not [line for line in result.output.splitlines() if line[:2] in ("D\t", "C\t")]

    def test_plan_matches_sync_guard(self, runner, repo_path, theme_repo, write_branch):
        write_branch(theme_repo, "tooling", {"README.md": b"x"})
        before = theme_repo.get_ref("production")
        result = invoke(runner, "-r", repo_path, "sync", "tooling", "production")
        assert result.exit_code == 0, result.output
        assert theme_repo.get_ref("production") == before

    def test_missing_branch(self, runner, repo_path):
        result = invoke(runner, "-r", repo_path, "plan", "production", "nope")
        assert result.exit_code == 1
        assert "Branch not found: nope" in result.output


class TestSync:
    def test_sync(self, runner, repo_path, theme_repo):
        result = invoke(runner, "-r", repo_path, "sync", "production", "sgc-production")
        assert result.exit_code == 0, result.output
        commit_id = theme_repo.get_ref("sgc-production")
        assert result.output.strip() == f"{commit_id[:7]} 6 added"

    def test_second_sync_quiet(self, runner, repo_path):
        invoke(runner, "-r", repo_path, "sync", "production", "sgc-production")
        result = invoke(runner, "-r", repo_path, "sync", "production", "sgc-production")
        assert result.exit_code == 0
        assert result.output == ""

    def test_dry_run(self, runner, repo_path, theme_repo):
        before = theme_repo.get_ref("sgc-production")
        result = invoke(runner, "-r", repo_path, "sync", "production", "sgc-production", "-n")
        assert result.exit_code == 0
        assert "A\tassets/theme.css" in result.output
        assert theme_repo.get_ref("sgc-production") == before

    def test_message(self, runner, repo_path, theme_repo):
        invoke(runner, "-r", repo_path, "sync", "production", "sgc-production", "-m", "Deploy theme")
        commit = theme_repo.repo[theme_repo.get_ref("sgc-production").encode()]
        assert commit.message == b"Deploy theme\n"

    def test_missing_branch(self, runner, repo_path):
        result = invoke(runner, "-r", repo_path, "sync", "production", "sgc-staging")
        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_env_repo(self, runner, repo_path):
        result = runner.invoke(main, ["sync", "production", "sgc-production"],
                               env={**CLEAN_ENV, "BRANCHSYNC_REPO": repo_path})
        assert result.exit_code == 0, result.output


class TestRebase:
    def test_rebase(self, runner, repo_path, theme_repo, write_branch):
        write_branch(theme_repo, "staging", {"a": b"1"})
        result = invoke(runner, "-r", repo_path, "rebase", "production", "staging")
        assert result.exit_code == 0, result.output
        commit_id = theme_repo.get_ref("staging")
        assert result.output.strip() == f"{commit_id[:7]} rebased staging onto production"

    def test_verbose_noop(self, runner, repo_path, theme_repo):
        theme_repo.create_ref("staging", theme_repo.get_ref("production"))
        result = invoke(runner, "-r", repo_path, "-v", "rebase", "production", "staging")
        assert result.exit_code == 0
        assert "staging already mirrors production" in result.output

    def test_missing_branch(self, runner, repo_path):
        result = invoke(runner, "-r", repo_path, "rebase", "production", "staging")
        assert result.exit_code == 1


class TestDispatch:
    @pytest.fixture
    def payload(self, tmp_path):
        def write(data):
            path = tmp_path / "event.json"
            path.write_text(json.dumps(data))
            return str(path)
        return write

    def test_merged_pr(self, runner, repo_path, payload):
        path = payload({
            "action": "closed",
            "pull_request": {
                "merged": True,
                "base": {"ref": "production"},
                "head": {"ref": "feature/header"},
                "labels": [],
            },
        })
        result = invoke(runner, "-r", repo_path, "dispatch", "pull_request", path)
        assert result.exit_code == 0, result.output
        assert result.output.strip() == (
            "sync production -> sgc-production (no JSON (except config/settings_schema.json)): 4 added"
        )

    def test_push_with_skips(self, runner, repo_path, payload):
        path = payload({"ref": "refs/heads/staging", "head_commit": {"message": "Tweak"}})
        result = invoke(runner, "-r", repo_path, "dispatch", "push", path)
        assert result.output.splitlines() == [
            "sync staging -> sgc-staging (all files): skipped",
            "sync staging -> sgc-staging-one-way (all files): skipped",
        ]

    def test_stdin(self, runner, repo_path):
        data = json.dumps({"ref": "refs/tags/v1"})
        result = invoke(runner, "-r", repo_path, "dispatch", "push", "-", input=data)
        assert result.exit_code == 0
        assert result.output == ""

    def test_invalid_json(self, runner, repo_path):
        result = invoke(runner, "-r", repo_path, "dispatch", "push", "-", input="{not json")
        assert result.exit_code == 1
        assert "Invalid JSON payload" in result.output

    def test_no_back_sync(self, runner, repo_path, payload):
        path = payload({"ref": "refs/heads/sgc-production", "head_commit": {"message": "Update from Shopify"}})
        result = invoke(runner, "-r", repo_path, "dispatch", "push", path, "--no-back-sync")
        assert result.exit_code == 0
        assert result.output == ""


class TestConfiguration:
    def test_no_store(self, runner):
        result = invoke(runner, "plan", "production", "sgc-production")
        assert result.exit_code == 1
        assert "exactly one" in result.output

    def test_both_stores(self, runner, repo_path):
        result = invoke(runner, "-r", repo_path, "--github", "acme/theme", "--token", "t",
                        "plan", "a", "b")
        assert result.exit_code == 1

    def test_github_without_token(self, runner):
        result = invoke(runner, "--github", "acme/theme", "plan", "a", "b")
        assert result.exit_code == 1
        assert "token" in result.output

    def test_missing_repo(self, runner, tmp_path):
        result = invoke(runner, "-r", str(tmp_path / "nope.git"), "plan", "a", "b")
        assert result.exit_code == 1
        assert "Repository not found" in result.output

    def test_bad_prefix(self, runner, repo_path):
        result = invoke(runner, "-r", repo_path, "plan", "a", "b", "--prefix", "/")
        assert result.exit_code == 2

    def test_not_a_repository(self, runner, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        result = invoke(runner, "-r", str(plain), "plan", "a", "b")
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert result.output.startswith("Error:")
