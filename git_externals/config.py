"""
Parsing of the ``.gitexternals`` file and runtime settings.

The config file is a sequence of git-config style sections::

    [external "demo"]
        path = lib/demo
        url = https://example.com/demo.git
        branch = main

Each section becomes an :class:`ExternalDefinition`. Parsing is lenient:
problems are logged as warnings and the offending line is ignored.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional

from .errors import ConfigError

CONFIG_FILENAME = ".gitexternals"
DEFAULT_BRANCH = "master"
# Set by the standalone script distribution; empty disables self-update.
DEFAULT_UPDATE_URL = ""

_SECTION_RE = re.compile(r'^\s*\[\s*external\s+"(?P<name>[^"]+)"\s*\]\s*$')
_TRUE_VALUES = {"true", "yes", "on", "1"}
_FALSE_VALUES = {"false", "no", "off", "0"}
KNOWN_KEYS = ("path", "url", "branch", "script", "lfs")


@dataclass
class ExternalDefinition:
    name: str
    path: str = ""
    url: str = ""
    branch: str = DEFAULT_BRANCH
    script: Optional[str] = None
    lfs: bool = False
    line: int = 0

    def missing_fields(self) -> list[str]:
        return [key for key in ("path", "url") if not getattr(self, key)]


@dataclass
class _DefinitionBuilder:
    name: str
    line: int
    values: dict = field(default_factory=dict)

    def apply(self, key: str, value: str, lineno: int) -> None:
        if key == "lfs":
            lowered = value.lower()
            if lowered in _TRUE_VALUES:
                self.values["lfs"] = True
            elif lowered in _FALSE_VALUES:
                self.values["lfs"] = False
            else:
                logging.warning(
                    "line %d: invalid boolean '%s' for lfs in external '%s'; using false",
                    lineno,
                    value,
                    self.name,
                )
            return
        if key == "script" and not value:
            self.values["script"] = None
            return
        if key == "branch" and not value:
            logging.warning(
                "line %d: empty branch for external '%s'; using %s",
                lineno,
                self.name,
                DEFAULT_BRANCH,
            )
            return
        self.values[key] = value

    def build(self) -> ExternalDefinition:
        return ExternalDefinition(name=self.name, line=self.line, **self.values)


def parse_config(lines: Iterable[str]) -> Iterator[ExternalDefinition]:
    """Yield one definition per ``[external "<name>"]`` section, in file order."""
    current: _DefinitionBuilder | None = None
    seen: set[str] = set()

    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith(("#", ";")):
            continue

        match = _SECTION_RE.match(line)
        if match:
            if current is not None:
                yield current.build()
            name = match.group("name").strip()
            if name in seen:
                logging.warning("line %d: external '%s' is defined more than once", lineno, name)
            seen.add(name)
            current = _DefinitionBuilder(name=name, line=lineno)
            continue

        if line.startswith("["):
            logging.warning("line %d: unrecognised section header: %s", lineno, line)
            if current is not None:
                yield current.build()
            current = None
            continue

        key, sep, value = line.partition("=")
        key = key.strip().lower()
        if not sep or not key:
            logging.warning("line %d: malformed line, expected 'key = value': %s", lineno, line)
            continue
        if current is None:
            logging.warning("line %d: '%s' appears before any external section", lineno, key)
            continue
        if key not in KNOWN_KEYS:
            logging.warning(
                "line %d: unknown key '%s' in external '%s' ignored", lineno, key, current.name
            )
            continue
        current.apply(key, _unquote(value.strip()), lineno)

    if current is not None:
        yield current.build()


def load_config(path: Path) -> Iterator[ExternalDefinition]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read config file {path}: {exc.strerror or exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid UTF-8: {exc.reason}") from exc
    return parse_config(text.splitlines())


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


@dataclass(frozen=True)
class Settings:
    update_url: str = DEFAULT_UPDATE_URL
    auto_update: bool = True
    config_filename: str = CONFIG_FILENAME

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        no_update = env.get("GIT_EXTERNALS_NO_UPDATE", "").strip().lower()
        return cls(
            update_url=env.get("GIT_EXTERNALS_UPDATE_URL") or DEFAULT_UPDATE_URL,
            auto_update=no_update not in _TRUE_VALUES,
            config_filename=env.get("GIT_EXTERNALS_CONFIG") or CONFIG_FILENAME,
        )
