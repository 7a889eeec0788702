"""Exception hierarchy shared by dotai components."""

from __future__ import annotations

from typing import Literal

GitErrorKind = Literal["network", "auth", "unknown"]


class DotAIError(RuntimeError):
    """Base class for errors raised by the sync engine."""


class ConfigError(DotAIError):
    """Raised when configuration cannot be used."""


class RepositoryNotConfiguredError(ConfigError):
    """Raised when an operation needs a repository URL and none is set."""

    def __init__(self) -> None:
        super().__init__(
            "DotAI is not initialized: repository URL is empty. Run `dotai init` first."
        )


class GitError(DotAIError):
    """A git command failed; `kind` is assigned once by the provider."""

    def __init__(self, message: str, *, kind: GitErrorKind = "unknown") -> None:
        super().__init__(message)
        self.kind: GitErrorKind = kind


class GitAuthError(GitError):
    """Authentication or repository access failure. Never retried."""

    def __init__(self, message: str, *, repo_url: str) -> None:
        self.original_message = message
        self.repo_url = repo_url
        super().__init__(
            "Git authentication failed. Please check your credentials:\n"
            "1. For SSH: Ensure your SSH key is added to the agent (ssh-add -l)\n"
            "2. For HTTPS: Check if your token/password is correct\n"
            f"3. Verify repository URL: {repo_url}\n"
            f"Original error: {message}",
            kind="auth",
        )


class LockTimeoutError(DotAIError):
    """Raised when the sync lock cannot be acquired in time."""

    retryable = True

    def __init__(self, lock_file: str, timeout: float) -> None:
        super().__init__(
            f"Failed to acquire sync lock after {timeout:g}s ({lock_file}). "
            "Another sync process may be running."
        )
        self.lock_file = lock_file
        self.timeout = timeout


__all__ = [
    "ConfigError",
    "DotAIError",
    "GitAuthError",
    "GitError",
    "GitErrorKind",
    "LockTimeoutError",
    "RepositoryNotConfiguredError",
]
