from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest


def git(path: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=path,
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    return result.stdout.strip()


def init_repo(path: Path, branch: str = "main") -> None:
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init")
    git(path, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
    git(path, "config", "user.name", "tester")
    git(path, "config", "user.email", "tester@example.com")
    git(path, "config", "commit.gpgsign", "false")


def commit_file(path: Path, filename: str, content: str) -> str:
    file_path = path / filename
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content)
    git(path, "add", filename)
    git(path, "commit", "-m", f"update {filename}")
    return git(path, "rev-parse", "HEAD")


@dataclass
class Remote:
    path: Path

    @property
    def url(self) -> str:
        return self.path.as_uri()

    def commit(self, filename: str, content: str) -> str:
        return commit_file(self.path, filename, content)

    def head(self) -> str:
        return git(self.path, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def git_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "tester")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tester@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "tester")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tester@example.com")
    monkeypatch.setenv("GIT_EXTERNALS_NO_UPDATE", "1")


@pytest.fixture
def remote(tmp_path: Path) -> Remote:
    path = tmp_path / "remote"
    init_repo(path)
    commit_file(path, "README.md", "demo readme\n")
    commit_file(path, "src/lib.txt", "library code\n")
    return Remote(path=path)


@pytest.fixture
def host(tmp_path: Path) -> Path:
    path = tmp_path / "host"
    init_repo(path)
    commit_file(path, "host.txt", "host repository\n")
    return path
