from __future__ import annotations

import logging
import shlex
import time
from pathlib import Path

from .gitutils import git_hooks_dir

HOOK_NAME = "post-merge"

_HOOK_TEMPLATE = """#!/bin/sh
# Installed by git-externals: refresh externals after merges and pulls.
{command}
exit $?
"""


def render_hook(tool_path: Path) -> str:
    return _HOOK_TEMPLATE.format(command=shlex.quote(str(tool_path)))


def hook_invokes_tool(hook_text: str, tool_path: Path) -> bool:
    return str(tool_path) in hook_text


def install_hook(repo: Path, tool_path: Path, *, hook_name: str = HOOK_NAME) -> Path:
    """Install a hook re-invoking ``tool_path``; returns the hook path.

    An existing foreign hook is backed up first. A hook that already invokes
    the tool is left untouched.
    """
    tool_path = tool_path.resolve()
    hooks_dir = git_hooks_dir(repo)
    hook_path = hooks_dir / hook_name

    if hook_path.exists():
        existing = hook_path.read_text(errors="replace")
        if hook_invokes_tool(existing, tool_path):
            logging.info("%s hook already invokes %s; leaving it untouched", hook_name, tool_path)
            return hook_path
        backup = _backup_path(hook_path)
        hook_path.rename(backup)
        logging.warning("Existing %s hook backed up to %s", hook_name, backup)

    hooks_dir.mkdir(parents=True, exist_ok=True)
    hook_path.write_text(render_hook(tool_path))
    hook_path.chmod(0o755)
    logging.info("Installed %s hook at %s", hook_name, hook_path)
    return hook_path


def _backup_path(hook_path: Path) -> Path:
    backup = hook_path.with_name(f"{hook_path.name}.backup")
    if backup.exists():
        stamp = time.strftime("%Y%m%d%H%M%S")
        backup = hook_path.with_name(f"{hook_path.name}.backup-{stamp}")
    return backup
