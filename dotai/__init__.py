"""Sync AI tool configuration files from a Git repository."""

from .engine import DotAIEngine, create_engine
from .errors import (
    ConfigError,
    DotAIError,
    GitAuthError,
    GitError,
    LockTimeoutError,
    RepositoryNotConfiguredError,
)
from .events import EventBus, SyncEvent
from .models import SyncOptions, SyncReport

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "DotAIEngine",
    "DotAIError",
    "EventBus",
    "GitAuthError",
    "GitError",
    "LockTimeoutError",
    "RepositoryNotConfiguredError",
    "SyncEvent",
    "SyncOptions",
    "SyncReport",
    "__version__",
    "create_engine",
]
