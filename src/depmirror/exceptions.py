"""Error types raised by the mirroring pipeline.

Everything deriving from MirrorError is fatal for a run. Prebuilt binary
fetch failures are the one FetchError the orchestrator absorbs.
"""

from __future__ import annotations

from typing import Iterable, Optional


class MirrorError(Exception):
    """Base class for fatal mirroring errors."""


class FetchError(MirrorError):
    """A registry request failed at the transport or HTTP level."""

    def __init__(self, url: str, error: Optional[BaseException] = None, status: Optional[int] = None):
        self.url = url
        self.error = error
        self.status = status
        status_text = status if status is not None else "n/a"
        super().__init__(
            f"Failed to fetch {url} because of error '{error}' and/or HTTP status {status_text}"
        )


class ChecksumMismatchError(MirrorError):
    """Downloaded archive digest differs from the registry checksum."""

    def __init__(self, name: str, version: str, expected: Optional[str], actual: str):
        self.name = name
        self.version = version
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"SHA checksum of {name}@{version} does not match (expected {expected}, got {actual})"
        )


class VersionResolutionError(MirrorError):
    """No published version satisfies the requested range."""

    def __init__(self, name: str, version_range: str, available: Iterable[str] = ()):
        self.name = name
        self.version_range = version_range
        self.available = list(available)
        super().__init__(
            f"No version of {name} satisfies '{version_range}' "
            f"({len(self.available)} versions available)"
        )


class ManifestError(MirrorError):
    """The manifest could not be read or parsed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load manifest {path}: {reason}")
