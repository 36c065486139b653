"""Tests for git repository detection and memory enrichment."""

import shutil
import subprocess

import pytest

from universal_memory_mcp.repo_info import (
    RepositoryInfo,
    detect_repository_info,
    enhance_with_repo_info,
    parse_repo_name,
)


@pytest.mark.parametrize("url, expected", [
    ("https://github.com/acme/widgets.git", "acme/widgets"),
    ("https://github.com/acme/widgets", "acme/widgets"),
    ("git@github.com:acme/widgets.git", "acme/widgets"),
    ("ssh://git@gitlab.example.com/team/tool.git", "team/tool"),
    ("not a url", None),
])
def test_parse_repo_name(url, expected):
    assert parse_repo_name(url) == expected


class TestEnhance:
    INFO = RepositoryInfo(
        is_git_repo=True,
        repo_name="acme/widgets",
        branch="main",
        tags=["repo:acme-widgets", "branch:main", "git-repo"],
    )

    def test_fills_missing_fields(self):
        result = enhance_with_repo_info({"context": "general", "project": None, "tags": None}, self.INFO)
        assert result["context"] == "repo-acme-widgets"
        assert result["project"] == "acme/widgets"
        assert result["tags"] == ["repo:acme-widgets", "branch:main", "git-repo"]

    def test_keeps_caller_values_and_skips_duplicate_tags(self):
        data = {"context": "ops", "project": "mine", "tags": ["git-repo", "x"]}
        result = enhance_with_repo_info(data, self.INFO)
        assert result["context"] == "ops"
        assert result["project"] == "mine"
        assert result["tags"] == ["git-repo", "x", "repo:acme-widgets", "branch:main"]
        assert data["tags"] == ["git-repo", "x"]

    def test_not_a_repo_is_unchanged(self):
        data = {"context": None, "project": None, "tags": None}
        assert enhance_with_repo_info(data, RepositoryInfo()) == data


def test_detect_outside_repository(tmp_path):
    info = detect_repository_info(str(tmp_path))
    assert info.is_git_repo is False
    assert info.tags == []


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_detect_real_repository(tmp_path):
    subprocess.run(["git", "init", "-q"], cwd=tmp_path, check=True)
    subprocess.run(["git", "remote", "add", "origin", "https://github.com/acme/widgets.git"],
                   cwd=tmp_path, check=True)

    info = detect_repository_info(str(tmp_path))
    assert info.is_git_repo is True
    assert info.repo_name == "acme/widgets"
    assert info.remote_name == "origin"
    assert "repo:acme-widgets" in info.tags
    assert info.tags[-1] == "git-repo"
