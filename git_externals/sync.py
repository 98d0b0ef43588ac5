from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .cache import cache_root_for, update_cache
from .config import ExternalDefinition, load_config
from .errors import GitExternalsError
from .gitutils import git_dir, git_toplevel, require_tools
from .materialize import materialize


@dataclass
class SyncResult:
    name: str
    status: str
    message: str = ""


@dataclass(frozen=True)
class RepoContext:
    root: Path
    git_dir: Path

    @property
    def cache_root(self) -> Path:
        return cache_root_for(self.git_dir)

    @classmethod
    def discover(cls, start: Optional[Path] = None) -> "RepoContext":
        start = (start or Path.cwd()).resolve()
        return cls(root=git_toplevel(start), git_dir=git_dir(start))


def sync_all(
    context: RepoContext,
    config_filename: str,
    *,
    script_root: Optional[Path] = None,
) -> List[SyncResult]:
    require_tools()
    definitions = load_config(context.root / config_filename)
    results = sync_definitions(definitions, context, script_root=script_root)
    _log_sync_summary(results)
    return results


def sync_definitions(
    definitions: Iterable[ExternalDefinition],
    context: RepoContext,
    *,
    script_root: Optional[Path] = None,
) -> List[SyncResult]:
    results: List[SyncResult] = []
    for definition in definitions:
        results.append(sync_external(definition, context, script_root=script_root))
    return results


def sync_external(
    definition: ExternalDefinition,
    context: RepoContext,
    *,
    script_root: Optional[Path] = None,
) -> SyncResult:
    missing = definition.missing_fields()
    if missing:
        message = f"missing required key(s): {', '.join(missing)}"
        logging.warning("Skipping external '%s': %s", definition.name, message)
        return SyncResult(name=definition.name, status="skipped", message=message)

    logging.info("Syncing external '%s'", definition.name)
    try:
        cache = update_cache(definition, context.cache_root)
        target = materialize(definition, cache, context.root, script_root=script_root)
    except GitExternalsError as exc:
        logging.error("External '%s' failed: %s", definition.name, exc)
        return SyncResult(name=definition.name, status="failed", message=str(exc))

    logging.info("External '%s' synced at %s", definition.name, cache.commit[:12])
    return SyncResult(name=definition.name, status="synced", message=str(target))


def _log_sync_summary(results: List[SyncResult]) -> None:
    stats = Counter(result.status for result in results)
    title = "Sync Summary"
    categories = [
        ("Externals", len(results), "sections found in the config file"),
        ("Synced", stats.get("synced", 0), "target directories refreshed"),
        ("Failed", stats.get("failed", 0), "fetch or mirror errors"),
        ("Skipped", stats.get("skipped", 0), "incomplete definitions"),
    ]

    lines = ["", title, "-" * len(title)]
    width = max(len(label) for label, _, _ in categories)
    for label, value, description in categories:
        lines.append(f"{label:<{width}} : {value} ({description})")
    logging.info("\n".join(lines))
