"""Source repository mirror management."""

from .provider import DEFAULT_RETRY_POLICY, GitProvider, classify_git_error

__all__ = ["DEFAULT_RETRY_POLICY", "GitProvider", "classify_git_error"]
