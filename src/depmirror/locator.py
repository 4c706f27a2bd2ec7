"""On-disk paths and URLs for mirrored artifacts.

Every path and URL embedding a package name uses the escaped form, so
``@scope/name`` lives in ``{root}/@scope%2fname/`` and is served from
``{local_url}@scope%2fname/``.
"""

from __future__ import annotations

import os
import re
import urllib.parse
from typing import Dict

import semantic_version

from .constants import Constants
from .models import BinaryMetadata, BinaryVariant

_TOKEN_RE = re.compile(r"\{([a-z_]+)\}")
_SLASHES_RE = re.compile(r"/+")


def escape_name(name: str) -> str:
    """Escape the scope separator of a package name."""
    return name.replace("/", "%2f")


def registry_metadata_url(registry_url: str, name: str) -> str:
    """URL of the registry metadata document for name."""
    return urllib.parse.urljoin(registry_url, escape_name(name))


def _template_values(
    name: str, version: str, module_name: str, variant: BinaryVariant
) -> Dict[str, str]:
    # see node-pre-gyp lib/util/versioning.js for the token set
    parsed = semantic_version.Version(version)
    return {
        "name": escape_name(name),
        "version": version,
        "major": str(parsed.major),
        "minor": str(parsed.minor),
        "patch": str(parsed.patch),
        "prerelease": ".".join(parsed.prerelease),
        "build": ".".join(parsed.build),
        "module_name": module_name,
        "node_abi": f"{Constants.NODE_ABI_PREFIX}{variant.abi}",
        "platform": variant.platform,
        "arch": variant.arch,
        "configuration": Constants.BINARY_CONFIGURATION,
        "toolset": Constants.BINARY_TOOLSET,
    }


def format_binary_template(
    template: str, name: str, version: str, module_name: str, variant: BinaryVariant
) -> str:
    """Expand a node-pre-gyp path template for one variant.

    Substitution is a single pass over the template, so substituted values
    are never re-scanned for tokens. Unknown tokens are kept verbatim and
    runs of ``/`` collapse to one.
    """
    values = _template_values(name, version, module_name, variant)

    def _sub(match: "re.Match[str]") -> str:
        return values.get(match.group(1), match.group(0))

    return _SLASHES_RE.sub("/", _TOKEN_RE.sub(_sub, template))


class ArtifactLocator:
    """Computes mirror paths and URLs under a root folder and base URL."""

    def __init__(self, root_folder: str, local_url: str):
        self.root_folder = os.path.abspath(root_folder)
        self.local_url = local_url

    def package_dir(self, name: str) -> str:
        return os.path.join(self.root_folder, escape_name(name))

    def metadata_path(self, name: str) -> str:
        return os.path.join(self.package_dir(name), Constants.METADATA_FILE)

    def tarball_filename(self, name: str, version: str) -> str:
        return f"{escape_name(name)}-{version}{Constants.TARBALL_EXTENSION}"

    def tarball_path(self, name: str, version: str) -> str:
        return os.path.join(self.package_dir(name), self.tarball_filename(name, version))

    def tarball_url(self, name: str, version: str) -> str:
        return urllib.parse.urljoin(
            self.local_url, f"{escape_name(name)}/{self.tarball_filename(name, version)}"
        )

    def path_for_mirror_url(self, url: str) -> str:
        """Map a URL under local_url back to the file that serves it."""
        if not url.startswith(self.local_url):
            raise ValueError(f"{url} is not served from {self.local_url}")
        relative = url[len(self.local_url):]
        return os.path.join(self.root_folder, *relative.split("/"))

    def binary_filename(self, name: str, version: str, binary: BinaryMetadata, variant: BinaryVariant) -> str:
        return format_binary_template(binary.package_name, name, version, binary.module_name, variant)

    def binary_remote_path(self, name: str, version: str, binary: BinaryMetadata, variant: BinaryVariant) -> str:
        return format_binary_template(binary.remote_path, name, version, binary.module_name, variant)

    def binary_path(self, name: str, version: str, binary: BinaryMetadata, variant: BinaryVariant) -> str:
        filename = self.binary_filename(name, version, binary, variant)
        return os.path.join(self.package_dir(name), *filename.strip("/").split("/"))

    def binary_url(self, name: str, version: str, binary: BinaryMetadata, variant: BinaryVariant) -> str:
        """Upstream URL of a prebuilt binary."""
        remote_path = self.binary_remote_path(name, version, binary, variant)
        filename = self.binary_filename(name, version, binary, variant)
        return urllib.parse.urljoin(binary.host, remote_path + filename)

    def mirror_binary_remote_path(self, name: str) -> str:
        """remote_path written into mirrored metadata so clients hit package_dir."""
        base_path = urllib.parse.urlsplit(self.local_url).path.rstrip("/")
        return f"{base_path}/{escape_name(name)}/"
