from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from rich.logging import RichHandler

from . import __version__
from .config import Settings, load_config
from .errors import GitExternalsError
from .hooks import install_hook
from .selfupdate import is_standalone, locate_tool, self_update
from .sync import RepoContext, sync_all

COMMANDS = {
    "sync": "Sync all externals without checking for a newer git-externals.",
    "list": "List the externals defined in the config file.",
    "update": "Check for a newer git-externals and install it.",
    "install-hook": "Install a post-merge hook that re-runs git-externals.",
    "help": "Show this help message.",
}


def build_parser() -> argparse.ArgumentParser:
    epilog = "commands:\n" + "\n".join(
        f"  {name:<14} {description}" for name, description in COMMANDS.items()
    )
    epilog += "\n\nWithout a command, checks for updates and then syncs all externals."
    parser = argparse.ArgumentParser(
        prog="git-externals",
        description="Mirror external git repositories into subdirectories of this repository.",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("command", nargs="?", help="Command to run (default: update check + sync).")
    return parser


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(show_time=False, show_path=False, markup=False)],
    )


def run(args: argparse.Namespace, parser: argparse.ArgumentParser, argv: Sequence[str]) -> int:
    configure_logging(args.verbose)
    logging.debug("Arguments: %s", args)
    settings = Settings.from_env()

    if args.command is None:
        if settings.auto_update:
            self_update(settings.update_url, argv)
        return _run_sync(settings)
    if args.command == "sync":
        return _run_sync(settings)
    if args.command == "list":
        return _run_list(settings)
    if args.command == "update":
        result = self_update(settings.update_url, argv, restart=False)
        if result.status == "up-to-date":
            logging.info("git-externals %s is up to date", result.current)
        elif result.status == "unavailable":
            logging.warning(
                "Self-update needs a standalone git-externals script and "
                "GIT_EXTERNALS_UPDATE_URL; upgrade installed packages with pip"
            )
        return 0 if result.ok else 1
    if args.command == "install-hook":
        context = RepoContext.discover()
        install_hook(context.root, locate_tool())
        return 0
    if args.command == "help":
        parser.print_help()
        return 0

    print(f"unknown command: {args.command}")
    parser.print_help()
    return 1


def _run_sync(settings: Settings) -> int:
    context = RepoContext.discover()
    sync_all(context, settings.config_filename, script_root=_script_root(context))
    return 0


def _script_root(context: RepoContext) -> Path:
    tool = locate_tool()
    if is_standalone(tool):
        return tool.parent
    return context.root


def _run_list(settings: Settings) -> int:
    context = RepoContext.discover()
    for definition in load_config(context.root / settings.config_filename):
        flags = " [lfs]" if definition.lfs else ""
        print(f"{definition.name}: {definition.path} <- {definition.url} ({definition.branch}){flags}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        print(f"unknown command: {' '.join(argv)}")
        parser.print_help()
        return 1
    try:
        return run(args, parser, argv)
    except GitExternalsError as exc:
        logging.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logging.error("Interrupted")
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
