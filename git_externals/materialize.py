from __future__ import annotations

import logging
import os
import shutil
import stat
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .cache import CacheEntry
from .config import ExternalDefinition
from .errors import MaterializeError
from .gitutils import rsync_tree

MARKER_FILENAME = ".gitexternal"
PRESERVED_FILENAMES = frozenset({".gitignore"})


def resolve_target(repo_root: Path, definition: ExternalDefinition) -> Path:
    root = repo_root.resolve()
    target = (root / definition.path).resolve()
    if target == root or root not in target.parents:
        raise MaterializeError(
            f"Target path for {definition.name} must be inside the repository: {definition.path}"
        )
    return target


def materialize(
    definition: ExternalDefinition,
    cache: CacheEntry,
    repo_root: Path,
    *,
    script_root: Optional[Path] = None,
) -> Path:
    """Mirror the cache working tree into the external's target directory."""
    target = resolve_target(repo_root, definition)
    prepare_target(target)

    logging.info("Mirroring %s into %s", definition.name, target)
    try:
        rsync_tree(cache.path, target)
    except subprocess.CalledProcessError as exc:
        raise MaterializeError(
            f"rsync failed for {definition.name}: {(exc.stderr or '').strip()}"
        ) from exc

    write_marker(target, definition, commit=cache.commit)

    if definition.script:
        run_script(definition, target, script_root=script_root)
    return target


def prepare_target(target: Path) -> None:
    if target.exists() and not target.is_dir():
        raise MaterializeError(f"Target exists but is not a directory: {target}")
    target.parent.mkdir(parents=True, exist_ok=True)
    if not target.exists():
        target.mkdir()
        return
    for child in target.iterdir():
        if child.name in PRESERVED_FILENAMES:
            continue
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def write_marker(
    target: Path,
    definition: ExternalDefinition,
    *,
    commit: str | None = None,
    now: datetime | None = None,
) -> Path:
    timestamp = (now or datetime.now(timezone.utc)).isoformat(timespec="seconds")
    lines = [f"url={definition.url}", f"branch={definition.branch}"]
    if commit:
        lines.append(f"commit={commit}")
    lines.append(f"updated={timestamp}")
    marker = target / MARKER_FILENAME
    marker.write_text("\n".join(lines) + "\n")
    return marker


def read_marker(target: Path) -> dict[str, str]:
    marker = target / MARKER_FILENAME
    if not marker.is_file():
        return {}
    data: dict[str, str] = {}
    for line in marker.read_text().splitlines():
        key, sep, value = line.partition("=")
        if sep:
            data[key.strip()] = value.strip()
    return data


def run_script(
    definition: ExternalDefinition,
    target: Path,
    *,
    script_root: Optional[Path] = None,
) -> bool:
    """Run the post-sync script. Failures are logged, never raised."""
    script = Path(definition.script or "").expanduser()
    if not script.is_absolute():
        script = (script_root or Path.cwd()) / script
    if not script.is_file():
        logging.error("Post-sync script for %s not found: %s", definition.name, script)
        return False

    mode = script.stat().st_mode
    if not os.access(script, os.X_OK):
        logging.debug("Making %s executable", script)
        script.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    env = dict(os.environ)
    env.update(
        {
            "GIT_EXTERNAL_NAME": definition.name,
            "GIT_EXTERNAL_PATH": str(target),
            "GIT_EXTERNAL_URL": definition.url,
            "GIT_EXTERNAL_BRANCH": definition.branch,
        }
    )
    logging.info("Running post-sync script %s", script)
    try:
        result = subprocess.run([str(script)], cwd=target, env=env)
    except OSError as exc:
        logging.error("Post-sync script %s could not be executed: %s", script, exc)
        return False
    if result.returncode != 0:
        logging.error(
            "Post-sync script %s exited with status %d", script, result.returncode
        )
        return False
    return True
