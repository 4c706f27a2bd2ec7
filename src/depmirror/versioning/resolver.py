"""npm version resolver using semantic versioning."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Sequence, Union

import semantic_version

from ..common.http_client import RegistryClient
from ..common.logging_utils import extra_context, is_debug_enabled
from ..common.tasks import gather_or_cancel
from ..context import MirrorContext
from ..exceptions import VersionResolutionError
from ..locator import registry_metadata_url
from ..manifest import dependencies_to_refs
from ..models import DependencyRef, ResolvedPackage

logger = logging.getLogger(__name__)

_PRERELEASE_HINTS = ("pre", "rc", "alpha", "beta")
_OPERATOR_SPACE_RE = re.compile(r"(<=|>=|<|>|=|\^|~)\s+")


def _normalize_spec(spec_str: str) -> str:
    """Normalize npm range syntax (hyphen, x-ranges) into SimpleSpec-compatible form."""
    s = spec_str.strip()

    # Hyphen ranges: "1.2.3 - 1.4.5" => ">=1.2.3,<=1.4.5"
    m = re.match(r'^\s*([0-9A-Za-z\.\-\+]+)\s+-\s+([0-9A-Za-z\.\-\+]+)\s*$', s)
    if m:
        return f">={m.group(1)},<={m.group(2)}"

    s2 = s.replace('*', 'x').lower()
    m = re.match(r'^\s*v?(\d+)\.(\d+)\.x\s*$', s2)
    if m:
        major, minor = int(m.group(1)), int(m.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    m = re.match(r'^\s*v?(\d+)(\.x)?(\.x)?\s*$', s2)
    if m:
        major = int(m.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    return spec_str


def _parse_spec(name: str, spec_str: str, available: Sequence[str]) -> Union[semantic_version.NpmSpec, semantic_version.SimpleSpec]:
    # ">= 1.0.0" => ">=1.0.0", as node-semver trims it
    compact = _OPERATOR_SPACE_RE.sub(r"\1", spec_str)
    # NpmSpec understands ^, ~, ||, hyphen and x-ranges natively
    try:
        return semantic_version.NpmSpec(compact)
    except ValueError:
        pass
    try:
        return semantic_version.SimpleSpec(_normalize_spec(compact))
    except ValueError as e:
        raise VersionResolutionError(name, spec_str, available) from e


def pick_version(name: str, version_range: str, metadata: Mapping[str, Any]) -> str:
    """Pick the highest published version satisfying version_range.

    Args:
        name: Package name, for error reporting.
        version_range: npm range, exact version or dist-tag.
        metadata: Registry metadata document for the package.

    Returns:
        The version key as published in ``metadata["versions"]``.

    Raises:
        VersionResolutionError: If nothing satisfies the range.
    """
    versions: Dict[str, Any] = metadata.get("versions") or {}
    available = list(versions.keys())
    spec_str = (version_range or "").strip() or "*"

    if spec_str in versions:
        return spec_str

    dist_tags = metadata.get("dist-tags") or {}
    tagged = dist_tags.get(spec_str)
    if tagged is not None:
        if tagged in versions:
            return tagged
        raise VersionResolutionError(name, spec_str, available)

    spec = _parse_spec(name, spec_str, available)
    allow_prerelease = isinstance(spec, semantic_version.NpmSpec) or any(
        hint in spec_str.lower() for hint in _PRERELEASE_HINTS
    )

    parsed: Dict[semantic_version.Version, str] = {}
    for key in available:
        try:
            ver = semantic_version.Version(key.lstrip("v="))
        except ValueError:
            continue  # Skip invalid versions
        if ver.prerelease and not allow_prerelease:
            continue
        parsed[ver] = key

    best = spec.select(parsed.keys())
    if best is None:
        raise VersionResolutionError(name, spec_str, available)
    return parsed[best]


class VersionResolver:
    """Resolves dependency ranges against registry metadata, recursively."""

    def __init__(self, client: RegistryClient, context: MirrorContext, registry_url: str):
        self._client = client
        self._context = context
        self._registry_url = registry_url

    def metadata_url(self, name: str) -> str:
        return registry_metadata_url(self._registry_url, name)

    async def fetch_metadata(self, name: str) -> Dict[str, Any]:
        return await self._client.fetch_json(self.metadata_url(name))

    async def resolve(self, ref: DependencyRef) -> List[ResolvedPackage]:
        """Resolve ref and, the first time its version is seen, its dependencies.

        Returns:
            Newly collected packages, depth first. An already collected
            name@version yields an empty list.
        """
        metadata = await self.fetch_metadata(ref.name)
        version = pick_version(ref.name, ref.version_range, metadata)
        entry = metadata["versions"][version] or {}
        package = ResolvedPackage(
            name=ref.name,
            version=version,
            dependencies=dependencies_to_refs(entry.get("dependencies")),
        )

        if not self._context.collect(package.name, package.version):
            return []

        if is_debug_enabled(logger):
            logger.debug(
                "Resolved %s@%s to %s",
                ref.name,
                ref.version_range,
                version,
                extra=extra_context(
                    event="resolve",
                    component="resolver",
                    package=ref.name,
                    requested_spec=ref.version_range,
                    resolved_version=version,
                    dependency_count=len(package.dependencies),
                ),
            )

        resolved = [package]
        # Sequential per package so a diamond registers before its second sighting
        for dependency in package.dependencies:
            resolved.extend(await self.resolve(dependency))
        return resolved

    async def resolve_all(self, refs: Sequence[DependencyRef]) -> List[ResolvedPackage]:
        """Resolve top-level references concurrently."""
        results = await gather_or_cancel(self.resolve(ref) for ref in refs)
        return [package for packages in results for package in packages]
