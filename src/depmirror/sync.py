"""Mirroring pipeline: resolve, download, then optionally prune."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import List, Mapping, Optional

import aiohttp

from .common.http_client import RegistryClient
from .config import MirrorConfig
from .context import MirrorContext
from .download import DownloadOrchestrator
from .locator import ArtifactLocator
from .manifest import dependencies_to_refs, load_manifest
from .prune import prune_mirror
from .versioning import VersionResolver

logger = logging.getLogger(__name__)


async def synchronize(
    config: MirrorConfig,
    dependencies: Optional[Mapping[str, str]] = None,
    context: Optional[MirrorContext] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> List[str]:
    """Mirror the dependency closure of a manifest into config.root_folder.

    Args:
        config: Run configuration.
        dependencies: Direct dependencies; read from config.manifest when None.
        context: Run state; a fresh one is created when None.
        session: Optional aiohttp session (tests inject a stub).

    Returns:
        One status line per mirrored package version.
    """
    if dependencies is None:
        dependencies = load_manifest(config.manifest)
    context = context or MirrorContext()
    locator = ArtifactLocator(config.root_folder, config.local_url)
    os.makedirs(config.root_folder, exist_ok=True)

    async with RegistryClient(context, timeout=config.timeout, session=session) as client:
        resolver = VersionResolver(client, context, config.registry_url)
        resolved = await resolver.resolve_all(dependencies_to_refs(dependencies))
        logger.info(
            "Resolved %d package versions across %d packages",
            len(resolved),
            len(context.collected),
        )

        orchestrator = DownloadOrchestrator(
            client,
            context,
            locator,
            config.registry_url,
            binary_variants=config.binary_variants,
            pretty=config.pretty,
            concurrency=config.concurrency,
        )
        statuses = await orchestrator.download_all(context.collected_packages())

    required_files = context.freeze()
    if config.prune:
        removed = prune_mirror(config.root_folder, required_files)
        logger.info("Pruned %d entries from %s", len(removed), config.root_folder)
    return statuses


def run(config: MirrorConfig, dependencies: Optional[Mapping[str, str]] = None) -> List[str]:
    """Blocking wrapper around synchronize."""
    return asyncio.run(synchronize(config, dependencies))
