"""
Self-update of the standalone ``git-externals`` script.

The latest revision is downloaded from the configured update URL and
compared with the running tool using the ``__version__ = "..."`` marker line found in both
files. The running file is only replaced by a strictly newer version, and
only when it is a standalone script carrying its own marker; a pip-installed
package is upgraded with pip instead.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

import httpx

from . import __version__
from .errors import GitExternalsError, NetworkError

CONNECT_TIMEOUT = 10.0
_VERSION_RE = re.compile(r"""^__version__\s*=\s*["']([^"']+)["']\s*$""", re.MULTILINE)
_VERSION_PART_RE = re.compile(r"\d+|[A-Za-z]+")


@dataclass
class UpdateResult:
    status: str
    current: Optional[str] = None
    available: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in {"up-to-date", "updated"}


def extract_version(text: str) -> Optional[str]:
    match = _VERSION_RE.search(text)
    return match.group(1) if match else None


def version_key(version: str) -> Tuple[Tuple[int, int, str], ...]:
    """Natural sort key: numeric components compare as numbers.

    Alphabetic components sort before numbers, so ``1.0rc1 < 1.0.1``.
    """
    parts = []
    for token in _VERSION_PART_RE.findall(version):
        if token.isdigit():
            parts.append((1, int(token), ""))
        else:
            parts.append((0, 0, token.lower()))
    return tuple(parts)


def is_newer(candidate: str, current: str) -> bool:
    return version_key(candidate) > version_key(current)


def download_latest(
    url: str,
    destination: Path,
    *,
    client: Optional[httpx.Client] = None,
) -> Path:
    timeout = httpx.Timeout(None, connect=CONNECT_TIMEOUT)
    owns_client = client is None
    client = client or httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with destination.open("wb") as handle:
                for chunk in response.iter_bytes():
                    handle.write(chunk)
    except httpx.HTTPError as exc:
        raise NetworkError(f"Download of {url} failed: {exc}") from exc
    finally:
        if owns_client:
            client.close()

    if destination.stat().st_size == 0:
        raise NetworkError(f"Download of {url} returned an empty file")
    return destination


def locate_tool() -> Path:
    return Path(sys.argv[0]).resolve()


def standalone_version(tool_path: Path) -> Optional[str]:
    """Version marker of a standalone script, or None for anything else.

    Files inside the installed package never count, even if they carry a
    marker: they are not the tool's own file.
    """
    package_dir = Path(__file__).resolve().parent
    if package_dir == tool_path.parent or package_dir in tool_path.parents:
        return None
    try:
        return extract_version(tool_path.read_text(encoding="utf-8", errors="replace"))
    except OSError:
        return None


def is_standalone(tool_path: Path) -> bool:
    return standalone_version(tool_path) is not None


def check_for_update(
    url: str,
    tool_path: Path,
    *,
    client: Optional[httpx.Client] = None,
) -> Tuple[UpdateResult, Optional[Path]]:
    """Download ``url`` and decide whether it should replace ``tool_path``.

    Returns the result and, when an update is available, the downloaded file.
    The caller owns the downloaded file.
    """
    if not url:
        logging.debug("No update URL configured (GIT_EXTERNALS_UPDATE_URL)")
        return UpdateResult(status="unavailable", current=__version__), None
    current = standalone_version(tool_path)
    if current is None:
        logging.debug(
            "%s is not a standalone git-externals script; self-update unavailable "
            "for installed package %s",
            tool_path,
            __version__,
        )
        return UpdateResult(status="unavailable", current=__version__), None

    fd, name = tempfile.mkstemp(prefix="git-externals-", suffix=".download")
    os.close(fd)
    download = Path(name)
    try:
        download_latest(url, download, client=client)
        available = extract_version(download.read_text(encoding="utf-8", errors="replace"))
        if available is None:
            raise NetworkError(f"No version marker found in file downloaded from {url}")
    except GitExternalsError as exc:
        download.unlink(missing_ok=True)
        logging.error("Self-update check failed: %s", exc)
        return UpdateResult(status="failed", current=current), None

    if not is_newer(available, current):
        download.unlink(missing_ok=True)
        logging.debug("git-externals %s is up to date (remote %s)", current, available)
        return UpdateResult(status="up-to-date", current=current, available=available), None
    return UpdateResult(status="available", current=current, available=available), download


def replace_tool(tool_path: Path, download: Path) -> None:
    mode = tool_path.stat().st_mode if tool_path.exists() else 0o755
    staged = tool_path.with_name(f".{tool_path.name}.new")
    shutil.copyfile(download, staged)
    staged.chmod(mode)
    os.replace(staged, tool_path)
    download.unlink(missing_ok=True)


def reexec(tool_path: Path, argv: Sequence[str]) -> None:
    logging.info("Restarting %s", tool_path)
    sys.stdout.flush()
    sys.stderr.flush()
    os.execv(str(tool_path), [str(tool_path), *argv])


def self_update(
    url: str,
    argv: Sequence[str],
    *,
    tool_path: Optional[Path] = None,
    client: Optional[httpx.Client] = None,
    restart: bool = True,
) -> UpdateResult:
    tool_path = tool_path or locate_tool()
    result, download = check_for_update(url, tool_path, client=client)
    if download is None:
        return result

    logging.info("Updating git-externals %s -> %s", result.current, result.available)
    try:
        replace_tool(tool_path, download)
    except OSError as exc:
        download.unlink(missing_ok=True)
        logging.error("Unable to replace %s: %s", tool_path, exc)
        return UpdateResult(status="failed", current=result.current, available=result.available)

    result = UpdateResult(status="updated", current=result.current, available=result.available)
    if restart:
        try:
            reexec(tool_path, argv)
        except OSError as exc:
            logging.error("Unable to restart %s: %s", tool_path, exc)
    return result
