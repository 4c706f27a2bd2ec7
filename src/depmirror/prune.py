"""Pruning sweep: remove mirror entries the current run did not touch."""

from __future__ import annotations

import logging
import os
from typing import AbstractSet, List

logger = logging.getLogger(__name__)


def prune_mirror(root_folder: str, required_files: AbstractSet[str]) -> List[str]:
    """Delete files and directories under root_folder absent from required_files.

    The walk is bottom-up, so a directory emptied earlier in the same sweep
    is removed too. Directories that still hold required files fail
    ``rmdir`` and are kept; removal errors are ignored.

    Args:
        root_folder: Mirror root. Never removed itself.
        required_files: Absolute paths registered during the run.

    Returns:
        Paths removed, relative to root_folder.
    """
    root = os.path.abspath(root_folder)
    removed: List[str] = []
    if not os.path.isdir(root):
        return removed

    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        for filename in filenames:
            full_path = os.path.join(dirpath, filename)
            if full_path in required_files:
                continue
            try:
                os.unlink(full_path)
            except OSError:
                continue
            relative = os.path.relpath(full_path, root)
            logger.info("Removed %s", relative)
            removed.append(relative)

        for dirname in dirnames:
            full_path = os.path.join(dirpath, dirname)
            if full_path in required_files:
                continue
            try:
                os.rmdir(full_path)
            except OSError:
                continue
            relative = os.path.relpath(full_path, root)
            logger.info("Removed %s/", relative)
            removed.append(f"{relative}/")

    return removed
