"""Download orchestrator: metadata rewrite, prebuilt binaries and tarballs.

One workflow per collected package name, at most ``concurrency`` of them in
flight. Within a workflow the steps run in order: metadata, then the
binaries of each version, then that version's tarball.
"""

from __future__ import annotations

import asyncio
import copy
import hashlib
import json
import logging
import os
import tempfile
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from .common.http_client import RegistryClient
from .common.logging_utils import extra_context, is_debug_enabled
from .common.tasks import gather_or_cancel
from .constants import Constants
from .context import MirrorContext
from .exceptions import ChecksumMismatchError, FetchError
from .locator import ArtifactLocator, registry_metadata_url
from .models import BinaryMetadata, BinaryVariant, Distribution

logger = logging.getLogger(__name__)


def sha1_hex(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def serialize_metadata(content: Dict[str, Any], pretty: bool = False) -> str:
    """Serialize metadata deterministically; 2-space indent when pretty."""
    if pretty:
        return json.dumps(content, indent=2, ensure_ascii=False)
    return json.dumps(content, separators=(",", ":"), ensure_ascii=False)


def _write_file(path: str, data: bytes) -> None:
    """Write data to path via a sibling temp file so readers never see a partial file."""
    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".", suffix=".part", dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as handle:
        return handle.read()


class DownloadOrchestrator:
    """Mirrors collected packages into the local tree."""

    def __init__(
        self,
        client: RegistryClient,
        context: MirrorContext,
        locator: ArtifactLocator,
        registry_url: str,
        binary_variants: Sequence[BinaryVariant] = (),
        pretty: bool = False,
        concurrency: int = Constants.DOWNLOAD_CONCURRENCY,
    ):
        """Initialize the orchestrator.

        Args:
            client: Fetch layer sharing the run's response cache.
            context: Run context; every existence check registers a required file.
            locator: Path and URL computations for the mirror.
            registry_url: Upstream registry base URL.
            binary_variants: Prebuilt binary targets to try for each version.
            pretty: Indent rewritten metadata files.
            concurrency: Maximum package workflows in flight.
        """
        self._client = client
        self._context = context
        self._locator = locator
        self._registry_url = registry_url
        self._variants = list(binary_variants)
        self._pretty = pretty
        self._concurrency = concurrency

    async def download_all(self, collected: Iterable[Tuple[str, Sequence[str]]]) -> List[str]:
        """Run one workflow per package under the concurrency cap.

        Returns:
            Status lines of every workflow. The first fatal error cancels
            the workflows still running and propagates.
        """
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(name: str, versions: Sequence[str]) -> List[str]:
            async with semaphore:
                return await self.download(name, versions)

        results = await gather_or_cancel(_bounded(name, versions) for name, versions in collected)
        return [status for statuses in results for status in statuses]

    async def download(self, name: str, versions: Sequence[str]) -> List[str]:
        """Mirror the given versions of one package.

        Returns:
            One status line per version.
        """
        metadata = await self._client.fetch_json(registry_metadata_url(self._registry_url, name))
        await self._write_metadata(name, metadata, versions)

        distributions = [
            Distribution.from_version_entry(name, version, metadata["versions"][version])
            for version in versions
        ]
        return await gather_or_cancel(self._download_version(dist) for dist in distributions)

    def rewrite_metadata(self, name: str, metadata: Dict[str, Any], versions: Iterable[str]) -> Dict[str, Any]:
        """Copy of metadata limited to versions, pointing at the mirror."""
        keep = set(versions)
        content = copy.deepcopy(metadata)
        entries: Dict[str, Any] = content.get("versions") or {}
        times: Dict[str, Any] = content.get("time") or {}

        for version in list(entries):
            if version not in keep:
                del entries[version]
                times.pop(version, None)
                continue
            entry = entries[version]
            entry.setdefault("dist", {})["tarball"] = self._locator.tarball_url(name, version)
            binary = entry.get("binary")
            if binary:
                binary["host"] = self._locator.local_url
                binary["remote_path"] = self._locator.mirror_binary_remote_path(name)
        return content

    async def _write_metadata(self, name: str, metadata: Dict[str, Any], versions: Sequence[str]) -> None:
        path = self._locator.metadata_path(name)
        serialized = serialize_metadata(self.rewrite_metadata(name, metadata, versions), self._pretty).encode("utf-8")

        loop = asyncio.get_running_loop()
        if self._context.file_exists(path):
            current = await loop.run_in_executor(None, _read_bytes, path)
            if current == serialized:
                return
        await loop.run_in_executor(None, _write_file, path, serialized)
        if is_debug_enabled(logger):
            logger.debug(
                "Wrote metadata for %s",
                name,
                extra=extra_context(event="write", component="download", target=path, versions=len(versions)),
            )

    async def _download_version(self, dist: Distribution) -> str:
        if dist.binary is not None:
            await self._download_binaries(dist, dist.binary)
        return await self._download_tarball(dist)

    async def _download_binaries(self, dist: Distribution, binary: BinaryMetadata) -> None:
        """Try every requested variant; a missing binary is never fatal."""
        loop = asyncio.get_running_loop()
        for variant in self._variants:
            path = self._locator.binary_path(dist.name, dist.version, binary, variant)
            if self._context.file_exists(path):
                logger.info(
                    "Already downloaded %s",
                    self._locator.binary_filename(dist.name, dist.version, binary, variant),
                )
                continue

            url = self._locator.binary_url(dist.name, dist.version, binary, variant)
            try:
                data = await self._client.fetch(url, binary=True)
            except FetchError as exc:
                logger.info("Pre-built binary not available %s", url)
                logger.debug("%s", exc)
                continue
            await loop.run_in_executor(None, _write_file, path, data)
            logger.info("Downloaded pre-built binary %s", url)

    async def _download_tarball(self, dist: Distribution) -> str:
        path = self._locator.tarball_path(dist.name, dist.version)
        if self._context.file_exists(path):
            status = f"Already downloaded {dist.name}@{dist.version}"
            logger.info(status)
            return status

        data: bytes = await self._client.fetch(dist.tarball_url, binary=True)  # type: ignore[assignment]
        actual = sha1_hex(data)
        if actual != dist.shasum:
            raise ChecksumMismatchError(dist.name, dist.version, dist.shasum, actual)

        await asyncio.get_running_loop().run_in_executor(None, _write_file, path, data)
        status = f"Downloaded {dist.name}@{dist.version}"
        logger.info(status)
        return status

