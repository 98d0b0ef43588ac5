from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import List, Sequence, Union

from .errors import MissingDependencyError, NotARepositoryError

REQUIRED_TOOLS = ("git", "rsync")


def require_tools(tools: Sequence[str] = REQUIRED_TOOLS) -> None:
    missing = [tool for tool in tools if shutil.which(tool) is None]
    if missing:
        raise MissingDependencyError(
            f"Required tool(s) not found on PATH: {', '.join(missing)}"
        )


def has_git_dir(path: Path) -> bool:
    return (path / ".git").exists()


def run_git(repo: Path, args: Sequence[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["git", "-C", str(repo)] + list(args),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )


def git_toplevel(path: Path) -> Path:
    result = run_git(path, ["rev-parse", "--show-toplevel"])
    if result.returncode != 0:
        raise NotARepositoryError(f"Not inside a git work tree: {path}")
    return Path(result.stdout.strip())


def git_dir(path: Path) -> Path:
    result = run_git(path, ["rev-parse", "--absolute-git-dir"])
    if result.returncode != 0:
        raise NotARepositoryError(f"Not inside a git repository: {path}")
    return Path(result.stdout.strip())


def git_hooks_dir(path: Path) -> Path:
    result = run_git(path, ["rev-parse", "--git-path", "hooks"])
    if result.returncode != 0:
        raise NotARepositoryError(f"Not inside a git repository: {path}")
    hooks = Path(result.stdout.strip())
    if not hooks.is_absolute():
        hooks = path / hooks
    return hooks


def git_rev_parse(repo: Path) -> str:
    result = run_git(repo, ["rev-parse", "HEAD"])
    if result.returncode != 0:
        raise RuntimeError(f"git rev-parse failed for {repo}: {result.stderr.strip()}")
    return result.stdout.strip()


def clone_shallow(source: Union[Path, str], destination: Path, branch: str) -> None:
    args = [
        "git",
        "clone",
        "--depth",
        "1",
        "--filter=blob:none",
        "--single-branch",
        "--branch",
        branch,
        str(source),
        str(destination),
    ]
    subprocess.run(
        args,
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )


def list_remote_branches(repo: Path, remote: str) -> List[str]:
    """Return branch names advertised by ``remote`` (a remote name or URL)."""
    result = run_git(repo, ["ls-remote", "--heads", remote])
    if result.returncode != 0:
        raise RuntimeError(f"git ls-remote failed for {remote}: {result.stderr.strip()}")
    branches = []
    for line in result.stdout.splitlines():
        _, _, ref = line.partition("\t")
        if ref.startswith("refs/heads/"):
            branches.append(ref[len("refs/heads/"):])
    return branches


def lfs_available() -> bool:
    if shutil.which("git") is None:
        return False
    result = subprocess.run(
        ["git", "lfs", "version"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    return result.returncode == 0


def rsync_tree(source: Path, destination: Path, exclude: Sequence[str] = (".git",)) -> None:
    args = ["rsync", "-a"]
    for pattern in exclude:
        args.append(f"--exclude={pattern}")
    # Trailing slashes copy directory contents rather than the directory itself.
    args.extend([f"{source}/", f"{destination}/"])
    subprocess.run(
        args,
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
