"""Shared fixtures: an in-memory npm registry served through a stub aiohttp session."""

import asyncio
import hashlib
import json
from typing import Any, Dict, List, Optional

import pytest

from depmirror.config import MirrorConfig
from depmirror.context import MirrorContext
from depmirror.sync import synchronize

REGISTRY_URL = "https://registry.test/"
LOCAL_URL = "http://mirror.local/"


class _DummyResponse:
    def __init__(self, status: int, body: bytes = b""):
        self.status = status
        self._body = body

    async def read(self) -> bytes:
        return self._body


class _DummyRequest:
    """Async context manager returned by _DummySession.get."""

    def __init__(self, outcome: Any):
        self._outcome = outcome

    async def __aenter__(self) -> _DummyResponse:
        # Yield once so concurrent callers can interleave like real I/O
        await asyncio.sleep(0)
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        return False


class FakeRegistry:
    """Serves packuments, tarballs and arbitrary routes; records every GET."""

    def __init__(self, registry_url: str = REGISTRY_URL):
        self.registry_url = registry_url
        self.packuments: Dict[str, Dict[str, Any]] = {}
        self.routes: Dict[str, Any] = {}
        self.requests: List[str] = []

    def metadata_url(self, name: str) -> str:
        return self.registry_url + name.replace("/", "%2f")

    def publish(
        self,
        name: str,
        version: str,
        dependencies: Optional[Dict[str, str]] = None,
        binary: Optional[Dict[str, str]] = None,
        tarball: Optional[bytes] = None,
        shasum: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = tarball if tarball is not None else f"tarball of {name}@{version}".encode()
        basename = name.split("/")[-1]
        tarball_url = f"{self.metadata_url(name)}/-/{basename}-{version}.tgz"
        doc = self.packuments.setdefault(
            name, {"name": name, "dist-tags": {}, "versions": {}, "time": {}}
        )
        entry: Dict[str, Any] = {
            "name": name,
            "version": version,
            "dist": {"tarball": tarball_url, "shasum": shasum or hashlib.sha1(body).hexdigest()},
        }
        if dependencies:
            entry["dependencies"] = dict(dependencies)
        if binary:
            entry["binary"] = dict(binary)
        doc["versions"][version] = entry
        doc["time"][version] = "2020-01-01T00:00:00.000Z"
        doc["dist-tags"]["latest"] = version
        self.routes[tarball_url] = (200, body)
        return entry

    def serve(self, url: str, body: bytes, status: int = 200) -> None:
        self.routes[url] = (status, body)

    def fail(self, url: str, exc: BaseException) -> None:
        self.routes[url] = exc

    def count(self, url: str) -> int:
        return self.requests.count(url)

    def get(self, url: str, **kwargs: Any) -> _DummyRequest:
        self.requests.append(url)
        return _DummyRequest(self._respond(url))

    def _respond(self, url: str) -> Any:
        for name, doc in self.packuments.items():
            if url == self.metadata_url(name):
                return _DummyResponse(200, json.dumps(doc).encode("utf-8"))
        route = self.routes.get(url)
        if route is None:
            return _DummyResponse(404, b'{"error":"Not found"}')
        if isinstance(route, BaseException):
            return route
        status, body = route
        return _DummyResponse(status, body)

    async def close(self) -> None:
        pass


@pytest.fixture
def registry():
    """A fresh in-memory registry."""
    return FakeRegistry()


@pytest.fixture
def mirror_root(tmp_path):
    return tmp_path / "mirror"


@pytest.fixture
def make_config(mirror_root):
    """Factory for MirrorConfig pointing at the fake registry and a temp root."""

    def _make(**overrides: Any) -> MirrorConfig:
        values: Dict[str, Any] = {
            "root_folder": str(mirror_root),
            "local_url": LOCAL_URL,
            "registry_url": REGISTRY_URL,
        }
        values.update(overrides)
        return MirrorConfig(**values)

    return _make


@pytest.fixture
def run_sync(registry):
    """Run the whole pipeline against the fake registry."""

    def _run(config: MirrorConfig, dependencies: Dict[str, str], context: Optional[MirrorContext] = None):
        return asyncio.run(synchronize(config, dependencies, context=context, session=registry))

    return _run
