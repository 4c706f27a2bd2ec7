"""depmirror - build a local npm registry mirror from a manifest.

Resolves a manifest's dependency ranges against the registry, follows
transitive dependencies, and mirrors metadata, tarballs and node-pre-gyp
prebuilt binaries into a folder that can be served as a registry.
"""

from .config import MirrorConfig
from .context import MirrorContext
from .exceptions import (
    ChecksumMismatchError,
    FetchError,
    ManifestError,
    MirrorError,
    VersionResolutionError,
)
from .sync import run, synchronize

__all__ = [
    "MirrorConfig",
    "MirrorContext",
    "MirrorError",
    "FetchError",
    "ChecksumMismatchError",
    "VersionResolutionError",
    "ManifestError",
    "run",
    "synchronize",
]

__version__ = "1.0.0"
