"""Mirror configuration: defaults, config file loading and CLI overrides."""

from __future__ import annotations

import itertools
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import yaml

from .constants import Constants
from .models import BinaryVariant

logger = logging.getLogger(__name__)


def _with_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else f"{url}/"


def expand_variants(
    abis: Iterable[Any], archs: Iterable[str], platforms: Iterable[str]
) -> List[BinaryVariant]:
    """Cartesian product of requested ABIs, architectures and platforms."""
    return [
        BinaryVariant(abi=str(abi), arch=str(arch), platform=str(platform))
        for abi, arch, platform in itertools.product(list(abis), list(archs), list(platforms))
    ]


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """Load a YAML or JSON configuration mapping.

    Args:
        path: Path to a .yml/.yaml/.json file. None yields an empty mapping.

    Returns:
        Configuration dict. An optional top-level ``mirror`` section is unwrapped.
    """
    if not path:
        return {}
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        if path.lower().endswith(".json"):
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not a mapping", path)
        return {}
    return data.get("mirror", data)


@dataclass
class MirrorConfig:
    """Configuration for a mirroring run."""

    root_folder: str
    local_url: str
    registry_url: str = Constants.REGISTRY_URL_NPM
    manifest: str = Constants.PACKAGE_JSON_FILE
    binary_variants: List[BinaryVariant] = field(default_factory=list)
    prune: bool = False
    pretty: bool = False
    timeout: int = Constants.REQUEST_TIMEOUT
    concurrency: int = Constants.DOWNLOAD_CONCURRENCY

    def __post_init__(self) -> None:
        if not self.root_folder:
            raise ValueError("root folder is required")
        if not self.local_url:
            raise ValueError("local URL is required")
        self.root_folder = os.path.abspath(self.root_folder)
        self.local_url = _with_trailing_slash(self.local_url)
        self.registry_url = _with_trailing_slash(self.registry_url)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "MirrorConfig":
        """Create config from a config-file style mapping."""
        binary = data.get("binary") or {}
        variants = expand_variants(
            binary.get("abi") or [], binary.get("arch") or [], binary.get("platform") or []
        )
        return cls(
            root_folder=data.get("root", ""),
            local_url=data.get("local_url", ""),
            registry_url=data.get("registry_url") or Constants.REGISTRY_URL_NPM,
            manifest=data.get("manifest") or Constants.PACKAGE_JSON_FILE,
            binary_variants=variants,
            prune=bool(data.get("prune", False)),
            pretty=bool(data.get("pretty", False)),
            timeout=int(data.get("timeout", Constants.REQUEST_TIMEOUT)),
            concurrency=int(data.get("concurrency", Constants.DOWNLOAD_CONCURRENCY)),
        )

    @classmethod
    def from_args(cls, args: Any, file_config: Optional[Dict[str, Any]] = None) -> "MirrorConfig":
        """Create config from CLI arguments layered over a config file.

        Args:
            args: Parsed CLI arguments namespace.
            file_config: Mapping loaded with load_config_file.

        Returns:
            MirrorConfig instance.
        """
        data: Dict[str, Any] = dict(file_config or {})
        binary: Dict[str, Any] = dict(data.get("binary") or {})

        if getattr(args, "ROOT", None):
            data["root"] = args.ROOT
        if getattr(args, "LOCAL_URL", None):
            data["local_url"] = args.LOCAL_URL
        if getattr(args, "REGISTRY_URL", None):
            data["registry_url"] = args.REGISTRY_URL
        if getattr(args, "MANIFEST", None):
            data["manifest"] = args.MANIFEST
        if getattr(args, "PRUNE", False):
            data["prune"] = True
        if getattr(args, "PRETTY", False):
            data["pretty"] = True
        for key, attr in (("abi", "ABI"), ("arch", "ARCH"), ("platform", "PLATFORM")):
            values = getattr(args, attr, None)
            if values:
                binary[key] = values
        data["binary"] = binary

        return cls.from_mapping(data)
