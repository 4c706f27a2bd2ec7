"""Data models for resolution and mirroring."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class DependencyRef:
    """A dependency name with the range it was requested at."""
    name: str
    version_range: str


@dataclass
class ResolvedPackage:
    """A concrete version chosen for a DependencyRef."""
    name: str
    version: str
    dependencies: List[DependencyRef] = field(default_factory=list)


@dataclass(frozen=True)
class BinaryVariant:
    """One prebuilt binary target: node ABI, CPU architecture and platform."""
    abi: str
    arch: str
    platform: str


@dataclass(frozen=True)
class BinaryMetadata:
    """node-pre-gyp ``binary`` block of a version entry."""
    module_name: str
    package_name: str
    remote_path: str
    host: str

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["BinaryMetadata"]:
        """Build from a metadata ``binary`` mapping; None unless it names a module."""
        if not data or not data.get("module_name"):
            return None
        return cls(
            module_name=str(data["module_name"]),
            package_name=str(data.get("package_name") or ""),
            remote_path=str(data.get("remote_path") or ""),
            host=str(data.get("host") or ""),
        )


@dataclass(frozen=True)
class Distribution:
    """Artifact references for one package version."""
    name: str
    version: str
    tarball_url: str
    shasum: Optional[str]
    binary: Optional[BinaryMetadata] = None

    @classmethod
    def from_version_entry(cls, name: str, version: str, entry: Mapping[str, Any]) -> "Distribution":
        dist: Dict[str, Any] = entry.get("dist") or {}
        return cls(
            name=name,
            version=version,
            tarball_url=dist.get("tarball", ""),
            shasum=dist.get("shasum"),
            binary=BinaryMetadata.from_dict(entry.get("binary")),
        )
