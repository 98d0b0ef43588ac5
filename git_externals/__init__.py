"""
git_externals package

Provides the ``git-externals`` command line tool, which mirrors external git
repositories into subdirectories of a host repository based on the
``.gitexternals`` config file.
"""

__version__ = "2026.10.0"

from .cli import main  # noqa: E402

__all__ = ["main", "__version__"]
