from __future__ import annotations

import logging
from pathlib import Path

import pytest

from git_externals.config import (
    DEFAULT_UPDATE_URL,
    ExternalDefinition,
    Settings,
    load_config,
    parse_config,
)
from git_externals.errors import ConfigError

SAMPLE = """
[external "demo"]
    path = lib/demo
    url = https://example.com/demo.git
    branch = main

[external "assets"]
    path = vendor/assets
    url = "https://example.com/assets.git"
    script = scripts/after-assets.sh
    lfs = true
"""


def test_parse_config_yields_one_definition_per_section() -> None:
    definitions = list(parse_config(SAMPLE.splitlines()))

    assert [d.name for d in definitions] == ["demo", "assets"]
    demo, assets = definitions
    assert demo == ExternalDefinition(
        name="demo",
        path="lib/demo",
        url="https://example.com/demo.git",
        branch="main",
        line=2,
    )
    assert assets.url == "https://example.com/assets.git"
    assert assets.branch == "master"
    assert assets.script == "scripts/after-assets.sh"
    assert assets.lfs is True


def test_parse_config_flushes_before_reading_next_section() -> None:
    consumed: list[str] = []

    def lines():
        for line in SAMPLE.splitlines():
            consumed.append(line)
            yield line

    definitions = parse_config(lines())
    first = next(definitions)

    assert first.name == "demo"
    assert consumed[-1] == '[external "assets"]'
    assert "    lfs = true" not in consumed


def test_parse_config_warns_on_unknown_and_malformed_lines(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING)
    text = """
orphan = value
[external "demo"]
    path = lib/demo
    colour = blue
    this line has no separator
    = nokey
    url = https://example.com/demo.git
"""
    definitions = list(parse_config(text.splitlines()))

    assert len(definitions) == 1
    assert definitions[0].path == "lib/demo"
    assert definitions[0].url == "https://example.com/demo.git"
    messages = [record.getMessage() for record in caplog.records]
    assert any("before any external section" in message for message in messages)
    assert any("unknown key 'colour'" in message for message in messages)
    assert sum("malformed line" in message for message in messages) == 2


def test_parse_config_handles_lfs_values_and_comments(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING)
    text = """
# leading comment
[external "a"]
    lfs = YES
[external "b"]
    ; another comment
    lfs = maybe
[external "c"]
    lfs = off
"""
    a, b, c = parse_config(text.splitlines())

    assert a.lfs is True
    assert b.lfs is False
    assert c.lfs is False
    assert any("invalid boolean 'maybe'" in record.getMessage() for record in caplog.records)


def test_parse_config_reports_duplicates_and_missing_fields(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING)
    text = """
[external "demo"]
    path = lib/demo
[external "demo"]
    url = https://example.com/demo.git
"""
    first, second = parse_config(text.splitlines())

    assert first.missing_fields() == ["url"]
    assert second.missing_fields() == ["path"]
    assert any("defined more than once" in record.getMessage() for record in caplog.records)


def test_parse_config_empty_input() -> None:
    assert list(parse_config(["", "   ", "\t"])) == []


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / ".gitexternals")


def test_load_config_reads_file(tmp_path: Path) -> None:
    config = tmp_path / ".gitexternals"
    config.write_text(SAMPLE)

    assert [d.name for d in load_config(config)] == ["demo", "assets"]


def test_settings_from_env() -> None:
    defaults = Settings.from_env({})
    assert defaults.update_url == DEFAULT_UPDATE_URL
    assert defaults.auto_update is True
    assert defaults.config_filename == ".gitexternals"

    custom = Settings.from_env(
        {
            "GIT_EXTERNALS_UPDATE_URL": "https://mirror.example.com/git-externals",
            "GIT_EXTERNALS_NO_UPDATE": "true",
            "GIT_EXTERNALS_CONFIG": "externals.conf",
        }
    )
    assert custom.update_url == "https://mirror.example.com/git-externals"
    assert custom.auto_update is False
    assert custom.config_filename == "externals.conf"


def test_parse_config_foreign_section_does_not_leak_keys(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING)
    text = """
[external "a"]
    path = lib/a
    url = https://example.com/a.git
[core]
    path = lib/elsewhere
    url = https://example.com/other.git
[external "b"]
    path = lib/b
    url = https://example.com/b.git
"""
    a, b = parse_config(text.splitlines())

    assert a.path == "lib/a"
    assert a.url == "https://example.com/a.git"
    assert b.path == "lib/b"
    messages = [record.getMessage() for record in caplog.records]
    assert any("unrecognised section header: [core]" in message for message in messages)
    assert sum("appears before any external section" in message for message in messages) == 2


def test_load_config_invalid_utf8(tmp_path: Path) -> None:
    config = tmp_path / ".gitexternals"
    config.write_bytes(b'[external "a"]\npath = lib/\xff\n')

    with pytest.raises(ConfigError, match="not valid UTF-8"):
        load_config(config)
