"""Manifest (package.json) loading."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from .exceptions import ManifestError
from .models import DependencyRef

logger = logging.getLogger(__name__)


def load_manifest(path: str) -> Dict[str, str]:
    """Return the production dependency mapping of a package.json.

    Args:
        path: Path to the manifest.

    Returns:
        Mapping of dependency name to version range; empty when none declared.
    """
    try:
        with open(path, encoding="utf-8") as file:
            data = json.load(file)
    except FileNotFoundError as e:
        raise ManifestError(path, "file not found") from e
    except json.JSONDecodeError as e:
        raise ManifestError(path, f"invalid JSON: {e}") from e
    except OSError as e:
        raise ManifestError(path, str(e)) from e

    if not isinstance(data, dict):
        raise ManifestError(path, "top level is not an object")
    dependencies = data.get("dependencies") or {}
    if not isinstance(dependencies, dict):
        raise ManifestError(path, "'dependencies' is not an object")
    logger.debug("Loaded %d dependencies from %s", len(dependencies), path)
    return {str(k): str(v) for k, v in dependencies.items()}


def dependencies_to_refs(dependencies: Optional[Mapping[str, Any]]) -> List[DependencyRef]:
    """Expand a name -> range mapping into DependencyRefs in declaration order."""
    return [
        DependencyRef(name=name, version_range=str(version_range))
        for name, version_range in (dependencies or {}).items()
    ]
