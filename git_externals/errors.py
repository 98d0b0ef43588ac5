from __future__ import annotations


class GitExternalsError(Exception):
    """Base exception for git-externals failures."""


class MissingDependencyError(GitExternalsError):
    """A required command line tool is not installed."""


class NotARepositoryError(GitExternalsError):
    pass


class ConfigError(GitExternalsError):
    pass


class NetworkError(GitExternalsError):
    """Clone, fetch or download failed."""


class BranchNotFoundError(NetworkError):
    def __init__(self, url: str, branch: str, available: list[str]) -> None:
        self.url = url
        self.branch = branch
        self.available = available
        listing = ", ".join(available) if available else "none"
        super().__init__(
            f"Branch '{branch}' not found on {url} (available branches: {listing})"
        )


class MaterializeError(GitExternalsError):
    pass
