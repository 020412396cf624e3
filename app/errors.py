"""Exception types shared across the sync engine."""

from __future__ import annotations


class InvalidIdentifier(ValueError):
    """Raised when input fails identifier validation at a boundary."""


class UpstreamUnavailable(RuntimeError):
    """Raised when a scrape, discovery or metadata request fails."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"GET {url} failed: {reason}")
        self.url = url
        self.reason = reason


class NotFound(LookupError):
    """Raised when a valid identifier has no metadata anywhere."""


class ConcurrentSyncSkipped(RuntimeError):
    """A sync trigger arrived while another run was active."""


class PersistenceFailure(RuntimeError):
    """Raised when a snapshot cannot be written or read back."""
