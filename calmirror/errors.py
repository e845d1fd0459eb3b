"""Error types raised by Calmirror."""


class CalmirrorError(RuntimeError):
    """Base error for all Calmirror failures."""


class PermissionDenied(CalmirrorError):
    """Raised when calendar or task access has not been granted."""


class ProviderError(CalmirrorError):
    """Raised by a provider when a backend call fails."""


class ProviderReadError(CalmirrorError):
    """Raised when upcoming events cannot be read from the provider."""


class ColorResolutionTimeout(CalmirrorError):
    """Raised when calendar colors stay unavailable after every retry."""

    def __init__(self, calendars: list[str], attempts: int) -> None:
        self.calendars = calendars
        self.attempts = attempts
        super().__init__(
            f"Calendar colors still unavailable after {attempts} attempt(s): "
            f"{', '.join(calendars)}"
        )


class SyncError(CalmirrorError):
    """Base error for failures while writing mirrored task lists."""


class TaskListCreateError(SyncError):
    """Raised when a mirrored task list cannot be created."""


class TaskDeleteError(SyncError):
    """Raised when a single task cannot be removed from a task list."""


class CommitError(SyncError):
    """Raised when staged provider writes cannot be committed."""

    def __init__(self, message: str, failures: list | None = None) -> None:
        self.failures = failures or []
        super().__init__(message)


class AlreadyRunning(CalmirrorError):
    """Raised when a sync is triggered while another one is in progress."""


class SyncCancelled(CalmirrorError):
    """Raised when a sync run is cancelled before its final commit."""
