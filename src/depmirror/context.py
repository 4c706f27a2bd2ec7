"""Run-scoped state shared by the resolver, orchestrator and prune sweep."""

from __future__ import annotations

import os
from typing import Dict, FrozenSet, List, Optional, Set, Tuple, Union


class MirrorContext:
    """State for a single mirroring run.

    All mutation happens on the event loop thread; file checks run there too,
    so no locking is needed.
    """

    def __init__(self) -> None:
        self.collected: Dict[str, Set[str]] = {}
        self.response_cache: Dict[str, bytes] = {}
        self._required_files: Union[Set[str], FrozenSet[str]] = set()
        self._frozen = False

    def collect(self, name: str, version: str) -> bool:
        """Record name@version; return False if it was already collected."""
        versions = self.collected.setdefault(name, set())
        if version in versions:
            return False
        versions.add(version)
        return True

    def collected_packages(self) -> List[Tuple[str, List[str]]]:
        """Collected names in the order they were first seen, versions sorted."""
        return [(name, sorted(versions)) for name, versions in self.collected.items()]

    def require(self, path: str) -> str:
        """Mark path as produced by this run; returns the absolute path."""
        if self._frozen:
            raise RuntimeError("required files are frozen")
        full_path = os.path.abspath(path)
        self._required_files.add(full_path)  # type: ignore[union-attr]
        return full_path

    def file_exists(self, path: str) -> bool:
        """Existence check that also keeps path out of the prune sweep."""
        return os.path.exists(self.require(path))

    def freeze(self) -> FrozenSet[str]:
        self._required_files = frozenset(self._required_files)
        self._frozen = True
        return self._required_files

    @property
    def required_files(self) -> FrozenSet[str]:
        return frozenset(self._required_files)

    def cached_response(self, url: str) -> Optional[bytes]:
        return self.response_cache.get(url)
