from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .config import ExternalDefinition
from .errors import BranchNotFoundError, NetworkError
from .gitutils import (
    clone_shallow,
    git_rev_parse,
    has_git_dir,
    lfs_available,
    list_remote_branches,
    run_git,
)

CACHE_DIRNAME = "externals"


@dataclass(frozen=True)
class CacheEntry:
    name: str
    path: Path
    commit: str


def cache_root_for(git_dir: Path) -> Path:
    return git_dir / CACHE_DIRNAME


def update_cache(definition: ExternalDefinition, cache_root: Path) -> CacheEntry:
    """Clone or fast-forward the cache entry for ``definition``."""
    cache_path = cache_root / definition.name
    if has_git_dir(cache_path):
        logging.info("Updating cache for %s (%s)", definition.name, definition.branch)
        _refresh_cache(definition, cache_path)
    else:
        logging.info("Cloning %s (%s) into cache", definition.url, definition.branch)
        _clone_cache(definition, cache_path)

    if definition.lfs:
        _pull_lfs(definition, cache_path)

    try:
        commit = git_rev_parse(cache_path)
    except RuntimeError as exc:
        raise NetworkError(str(exc)) from exc
    logging.debug("Cache %s at %s", cache_path, commit)
    return CacheEntry(name=definition.name, path=cache_path, commit=commit)


def _clone_cache(definition: ExternalDefinition, cache_path: Path) -> None:
    if cache_path.exists():
        # Leftover without git metadata, e.g. from an interrupted clone.
        shutil.rmtree(cache_path)
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        clone_shallow(definition.url, cache_path, definition.branch)
    except subprocess.CalledProcessError as exc:
        if cache_path.exists():
            shutil.rmtree(cache_path)
        _raise_fetch_failure(definition, cache_path.parent, definition.url, exc.stderr)


def _refresh_cache(definition: ExternalDefinition, cache_path: Path) -> None:
    result = run_git(cache_path, ["remote", "set-url", "origin", definition.url])
    if result.returncode != 0:
        raise NetworkError(
            f"git remote set-url failed for {cache_path}: {result.stderr.strip()}"
        )
    result = run_git(cache_path, ["fetch", "--depth", "1", "origin", definition.branch])
    if result.returncode != 0:
        _raise_fetch_failure(definition, cache_path, "origin", result.stderr)

    for args in (["reset", "--hard", "FETCH_HEAD"], ["clean", "-ffdx"]):
        result = run_git(cache_path, args)
        if result.returncode != 0:
            raise NetworkError(
                f"git {' '.join(args)} failed for {cache_path}: {result.stderr.strip()}"
            )


def _raise_fetch_failure(
    definition: ExternalDefinition, cwd: Path, remote: str, stderr: str | None
) -> None:
    try:
        branches = list_remote_branches(cwd, remote)
    except RuntimeError as exc:
        raise NetworkError(
            f"Unable to fetch {definition.url}: {(stderr or '').strip() or exc}"
        ) from exc
    if definition.branch not in branches:
        logging.error(
            "Branch '%s' does not exist on %s. Available branches:\n  %s",
            definition.branch,
            definition.url,
            "\n  ".join(branches) if branches else "(none)",
        )
        raise BranchNotFoundError(definition.url, definition.branch, branches)
    raise NetworkError(f"Unable to fetch {definition.url}: {(stderr or '').strip()}")


def _pull_lfs(definition: ExternalDefinition, cache_path: Path) -> None:
    if not lfs_available():
        logging.warning(
            "git-lfs is not installed; large files of %s are left as pointers",
            definition.name,
        )
        return
    for args in (["lfs", "install", "--local"], ["lfs", "pull"]):
        result = run_git(cache_path, args)
        if result.returncode != 0:
            logging.warning(
                "git %s failed for %s: %s",
                " ".join(args),
                definition.name,
                result.stderr.strip(),
            )
            return
