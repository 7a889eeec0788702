"""Local mirror of the configuration repository.

The mirror is cloned on first use and afterwards force-reset to the remote
branch tip, so it never diverges from upstream. Network failures are retried
with exponential backoff and then degrade to the cached copy; authentication
failures are raised immediately with remediation guidance.
"""

from __future__ import annotations

import os
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from ..errors import GitAuthError, GitError, GitErrorKind
from ..events import EventBus
from ..logging import get_logger
from ..models import PullResult, RepoStatus, RetryPolicy

Runner = Callable[..., str]

DEFAULT_RETRY_POLICY = RetryPolicy(max_retries=3, base_delay=1.0, backoff_multiplier=2.0)
DEFAULT_NETWORK_TIMEOUT = 30.0

_AUTH_MARKERS: Sequence[str] = (
    "authentication failed",
    "authorization failed",
    "permission denied",
    "could not read username",
    "could not read password",
    "invalid username or password",
    "repository not found",
    "access denied",
    "403 forbidden",
    "error: 403",
    "401 unauthorized",
    "error: 401",
)

_NETWORK_MARKERS: Sequence[str] = (
    "could not resolve host",
    "temporary failure in name resolution",
    "connection refused",
    "connection reset",
    "connection timed out",
    "network is unreachable",
    "operation timed out",
    "failed to connect",
    "unable to access",
)


def classify_git_error(message: str) -> GitErrorKind:
    """Map git output onto network/auth/unknown. Auth signatures win."""
    text = message.lower()
    if any(marker in text for marker in _AUTH_MARKERS):
        return "auth"
    if any(marker in text for marker in _NETWORK_MARKERS):
        return "network"
    return "unknown"


class GitProvider:
    """Clones, refreshes and inspects the local configuration mirror."""

    def __init__(
        self,
        repo_url: str,
        branch: str,
        cache_path: Path | str,
        event_bus: EventBus,
        *,
        retry_policy: RetryPolicy | None = None,
        runner: Runner | None = None,
        sleep: Callable[[float], None] = time.sleep,
        network_timeout: float = DEFAULT_NETWORK_TIMEOUT,
    ) -> None:
        self.repo_url = repo_url
        self.branch = branch
        self.cache_path = Path(cache_path)
        self.event_bus = event_bus
        self.retry_policy = retry_policy or DEFAULT_RETRY_POLICY
        self.network_timeout = network_timeout
        self._runner = runner or self._default_runner
        self._sleep = sleep
        self.logger = get_logger("git")

    @property
    def local_path(self) -> Path:
        return self.cache_path

    def pull(
        self,
        branch: str | None = None,
        *,
        tag: str | None = None,
        commit: str | None = None,
    ) -> PullResult:
        """Bring the mirror up to date, optionally pinning a tag or commit."""
        target_branch = branch or self.branch
        previous_hash = self._local_commit() if self._has_mirror() else None

        self.event_bus.emit(
            "git:pull:start", {"repoUrl": self.repo_url, "branch": target_branch}
        )

        try:
            self._with_retry(lambda: self._sync_branch(target_branch))
            if tag:
                self._git(["checkout", tag])
            elif commit:
                self._git(["checkout", commit])
        except GitAuthError:
            raise
        except GitError as exc:
            if exc.kind != "network":
                raise
            self.logger.warning("Repository unreachable, using cached mirror: %s", exc)
            self.event_bus.emit("git:offline", {"error": str(exc)})
            return PullResult(
                updated=False,
                commit_hash=self._local_commit() or "unknown",
                previous_hash=None,
                changed_files=[],
                from_cache=True,
            )

        current_hash = self._local_commit() or ""
        updated = previous_hash != current_hash
        changed_files = (
            self._changed_files(previous_hash, current_hash)
            if previous_hash and updated
            else []
        )
        self.logger.info(
            "Mirror %s at %s (%s)",
            self.cache_path,
            current_hash[:12] or "?",
            "updated" if updated else "unchanged",
        )
        self.event_bus.emit(
            "git:pull:complete",
            {"updated": updated, "commitHash": current_hash, "changedFiles": changed_files},
        )
        return PullResult(
            updated=updated,
            commit_hash=current_hash,
            previous_hash=previous_hash,
            changed_files=changed_files,
            from_cache=False,
        )

    def get_status(self) -> RepoStatus:
        local_commit = (self._local_commit() or "") if self._has_mirror() else ""
        remote_commit = self._remote_head()
        return RepoStatus(
            local_commit=local_commit,
            remote_commit=remote_commit,
            is_offline=remote_commit is None,
            last_sync_time=self._last_commit_time(),
            cache_path=self.cache_path,
        )

    def check_connectivity(self) -> bool:
        return self._remote_head() is not None

    # ------------------------------------------------------------------
    # Internals

    def _sync_branch(self, branch: str) -> None:
        if not self._has_mirror():
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            self._git(
                [
                    "clone",
                    "--branch",
                    branch,
                    "--single-branch",
                    self.repo_url,
                    str(self.cache_path),
                ],
                cwd=self.cache_path.parent,
                timeout=self.network_timeout,
            )
            return
        self._git(
            ["fetch", "origin", f"+refs/heads/{branch}:refs/remotes/origin/{branch}"],
            timeout=self.network_timeout,
        )
        # Detached HEADs from earlier tag/commit pins are discarded here.
        self._git(["checkout", "-B", branch, f"origin/{branch}"])
        self._git(["reset", "--hard", f"origin/{branch}"])

    def _with_retry(self, operation: Callable[[], None]) -> None:
        policy = self.retry_policy
        for attempt in range(policy.max_retries + 1):
            try:
                operation()
                return
            except GitError as exc:
                if exc.kind != "network" or attempt >= policy.max_retries:
                    raise
                delay = policy.delay_for(attempt)
                self.logger.warning(
                    "Network error talking to %s (attempt %d/%d), retrying in %.1fs: %s",
                    self.repo_url,
                    attempt + 1,
                    policy.max_retries + 1,
                    delay,
                    exc,
                )
                self._sleep(delay)

    def _has_mirror(self) -> bool:
        return (self.cache_path / ".git").exists()

    def _local_commit(self) -> Optional[str]:
        try:
            return self._git(["rev-parse", "HEAD"]).strip() or None
        except GitError:
            return None

    def _changed_files(self, previous: str, current: str) -> List[str]:
        try:
            output = self._git(["diff", "--name-only", previous, current])
        except GitError as exc:
            self.logger.debug("Cannot diff %s..%s: %s", previous, current, exc)
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    def _remote_head(self) -> Optional[str]:
        try:
            output = self._git(
                ["ls-remote", self.repo_url, "HEAD"],
                cwd=self.cache_path if self._has_mirror() else Path.home(),
                timeout=self.network_timeout,
            )
        except GitError:
            return None
        first = output.strip().split("\t", 1)[0].strip()
        return first or None

    def _last_commit_time(self) -> Optional[datetime]:
        if not self._has_mirror():
            return None
        try:
            output = self._git(["log", "-1", "--format=%cI"]).strip()
        except GitError:
            return None
        try:
            return datetime.fromisoformat(output) if output else None
        except ValueError:
            return None

    def _git(
        self,
        args: Iterable[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> str:
        """Run a git command; every failure leaves here as a classified GitError."""
        command = ["git", *args]
        workdir = cwd if cwd is not None else self.cache_path
        try:
            return self._runner(command, cwd=workdir, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            message = f"git {command[1]}: Operation timed out after {exc.timeout}s"
            raise GitError(message, kind="network") from exc
        except subprocess.CalledProcessError as exc:
            message = _describe_failure(command, exc)
        except OSError as exc:
            raise GitError(f"Unable to run git: {exc}", kind="unknown") from exc

        kind = classify_git_error(message)
        if kind == "auth":
            raise GitAuthError(message, repo_url=self.repo_url)
        raise GitError(message, kind=kind)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> str:
        env = os.environ.copy()
        env.setdefault("GIT_TERMINAL_PROMPT", "0")
        completed = subprocess.run(
            list(args),
            cwd=str(cwd) if cwd is not None else None,
            env=env,
            check=True,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
        return completed.stdout


def _describe_failure(command: Sequence[str], exc: subprocess.CalledProcessError) -> str:
    detail = (exc.stderr or exc.stdout or "").strip()
    prefix = f"git {command[1]} failed with exit code {exc.returncode}"
    return f"{prefix}: {detail}" if detail else prefix


__all__ = [
    "DEFAULT_NETWORK_TIMEOUT",
    "DEFAULT_RETRY_POLICY",
    "GitProvider",
    "Runner",
    "classify_git_error",
]
