"""Tests for the download orchestrator."""

import asyncio
import json
import os
from unittest.mock import patch

import pytest

from depmirror.common.http_client import RegistryClient
from depmirror.context import MirrorContext
from depmirror.download import DownloadOrchestrator, serialize_metadata, sha1_hex
from depmirror.exceptions import ChecksumMismatchError, FetchError
from depmirror.locator import ArtifactLocator
from depmirror.models import BinaryVariant

LOCAL_URL = "http://mirror.local/"

BINARY = {
    "module_name": "native",
    "module_path": "./lib/binding/",
    "host": "https://binaries.example.com/",
    "remote_path": "./{name}/v{version}/",
    "package_name": "{module_name}-v{version}-{node_abi}-{platform}-{arch}.tar.gz",
}


@pytest.fixture
def locator(mirror_root):
    return ArtifactLocator(str(mirror_root), LOCAL_URL)


def _download(registry, locator, collected, context=None, variants=(), pretty=False, concurrency=5):
    """Run download_all; returns (statuses, context)."""
    context = context or MirrorContext()

    async def _run():
        async with RegistryClient(context, session=registry) as client:
            orchestrator = DownloadOrchestrator(
                client,
                context,
                locator,
                registry.registry_url,
                binary_variants=variants,
                pretty=pretty,
                concurrency=concurrency,
            )
            return await orchestrator.download_all(collected)

    return asyncio.run(_run()), context


class TestMetadataRewrite:
    """Tests for the mirrored metadata document."""

    def _orchestrator(self, locator):
        return DownloadOrchestrator(None, MirrorContext(), locator, "https://registry.test/")

    def test_drops_uncollected_versions_and_times(self, registry, locator):
        """Uncollected versions and their time entries are dropped."""
        registry.publish("pkg", "1.0.0")
        registry.publish("pkg", "2.0.0")
        metadata = registry.packuments["pkg"]

        content = self._orchestrator(locator).rewrite_metadata("pkg", metadata, ["1.0.0"])

        assert list(content["versions"]) == ["1.0.0"]
        assert list(content["time"]) == ["1.0.0"]
        assert content["versions"]["1.0.0"]["dist"]["tarball"] == "http://mirror.local/pkg/pkg-1.0.0.tgz"
        # source document untouched
        assert "2.0.0" in metadata["versions"]

    def test_binary_host_and_remote_path_point_at_mirror(self, registry, locator):
        """Binary host and remote_path are rewritten to the mirror."""
        registry.publish("@scope/native", "1.0.0", binary=BINARY)

        content = self._orchestrator(locator).rewrite_metadata(
            "@scope/native", registry.packuments["@scope/native"], ["1.0.0"]
        )

        binary = content["versions"]["1.0.0"]["binary"]
        assert binary["host"] == LOCAL_URL
        assert binary["remote_path"] == "/@scope%2fnative/"
        assert binary["module_name"] == "native"

    def test_missing_time_section(self, locator):
        """Metadata without a time section is rewritten cleanly."""
        metadata = {"name": "pkg", "versions": {"1.0.0": {"dist": {}}, "2.0.0": {"dist": {}}}}

        content = self._orchestrator(locator).rewrite_metadata("pkg", metadata, ["2.0.0"])

        assert list(content["versions"]) == ["2.0.0"]
        assert "time" not in content

    def test_serialize_compact_and_pretty(self):
        """Compact and pretty serialization formats."""
        content = {"name": "pkg", "versions": {"1.0.0": {}}}
        assert serialize_metadata(content) == '{"name":"pkg","versions":{"1.0.0":{}}}'
        assert serialize_metadata(content, pretty=True) == (
            '{\n  "name": "pkg",\n  "versions": {\n    "1.0.0": {}\n  }\n}'
        )


class TestTarballs:
    """Tests for archive download and verification."""

    def test_downloads_and_writes_metadata(self, registry, locator):
        """Tarball and metadata are written and registered."""
        registry.publish("pkg", "1.0.0", tarball=b"pkg-one")
        registry.publish("pkg", "2.0.0", tarball=b"pkg-two")

        statuses, context = _download(registry, locator, [("pkg", ["1.0.0"])])

        assert statuses == ["Downloaded pkg@1.0.0"]
        with open(locator.tarball_path("pkg", "1.0.0"), "rb") as f:
            assert f.read() == b"pkg-one"
        assert not os.path.exists(locator.tarball_path("pkg", "2.0.0"))
        with open(locator.metadata_path("pkg"), encoding="utf-8") as f:
            assert list(json.load(f)["versions"]) == ["1.0.0"]
        assert os.path.abspath(locator.tarball_path("pkg", "1.0.0")) in context.required_files
        assert os.path.abspath(locator.metadata_path("pkg")) in context.required_files

    def test_existing_tarball_not_refetched(self, registry, locator):
        """An existing tarball is skipped without a request."""
        entry = registry.publish("pkg", "1.0.0")
        _download(registry, locator, [("pkg", ["1.0.0"])])

        statuses, _ = _download(registry, locator, [("pkg", ["1.0.0"])])

        assert statuses == ["Already downloaded pkg@1.0.0"]
        assert registry.count(entry["dist"]["tarball"]) == 1

    def test_checksum_mismatch_aborts_without_writing(self, registry, locator):
        """Mismatching archives never reach disk."""
        registry.publish("pkg", "1.0.0", tarball=b"tampered", shasum=sha1_hex(b"original"))

        with pytest.raises(ChecksumMismatchError) as excinfo:
            _download(registry, locator, [("pkg", ["1.0.0"])])

        assert excinfo.value.expected == sha1_hex(b"original")
        assert excinfo.value.actual == sha1_hex(b"tampered")
        package_dir = os.path.dirname(locator.tarball_path("pkg", "1.0.0"))
        assert not os.path.exists(locator.tarball_path("pkg", "1.0.0"))
        assert not [f for f in os.listdir(package_dir) if f.endswith(".part")]

    def test_tarball_fetch_failure_is_fatal(self, registry, locator):
        """Tarball fetch errors propagate."""
        entry = registry.publish("pkg", "1.0.0")
        registry.serve(entry["dist"]["tarball"], b"", status=500)

        with pytest.raises(FetchError):
            _download(registry, locator, [("pkg", ["1.0.0"])])

    def test_metadata_not_rewritten_when_unchanged(self, registry, locator):
        """Identical metadata is not rewritten."""
        registry.publish("pkg", "1.0.0")
        _download(registry, locator, [("pkg", ["1.0.0"])])

        with patch("depmirror.download._write_file") as mock_write:
            _download(registry, locator, [("pkg", ["1.0.0"])])

        mock_write.assert_not_called()

    def test_metadata_rewritten_when_changed(self, registry, locator):
        """Changed serialization rewrites metadata."""
        registry.publish("pkg", "1.0.0")
        _download(registry, locator, [("pkg", ["1.0.0"])])

        _download(registry, locator, [("pkg", ["1.0.0"])], pretty=True)

        with open(locator.metadata_path("pkg"), encoding="utf-8") as f:
            assert f.read().startswith('{\n  "name": "pkg"')


    def test_corrupt_metadata_file_is_replaced(self, registry, locator):
        """An undecodable index.json on disk is overwritten, not fatal."""
        registry.publish("util", "1.0.4")
        metadata_path = locator.metadata_path("util")
        os.makedirs(os.path.dirname(metadata_path))
        with open(metadata_path, "wb") as f:
            f.write(b"\xff\xfe garbage")

        statuses, _ = _download(registry, locator, [("util", ["1.0.4"])])

        assert statuses == ["Downloaded util@1.0.4"]
        with open(metadata_path, encoding="utf-8") as f:
            assert list(json.load(f)["versions"]) == ["1.0.4"]


class TestPrebuiltBinaries:
    """Tests for node-pre-gyp binary mirroring."""

    VARIANTS = [
        BinaryVariant(abi="93", arch="x64", platform="linux"),
        BinaryVariant(abi="93", arch="arm64", platform="linux"),
    ]

    def test_available_binary_written_and_missing_one_tolerated(self, registry, locator):
        """Available binaries are saved, missing ones skipped."""
        registry.publish("native", "1.0.0", binary=BINARY)
        registry.serve(
            "https://binaries.example.com/native/v1.0.0/native-v1.0.0-node-v93-linux-x64.tar.gz",
            b"x64 binary",
        )

        statuses, context = _download(registry, locator, [("native", ["1.0.0"])], variants=self.VARIANTS)

        assert statuses == ["Downloaded native@1.0.0"]
        x64 = locator.package_dir("native") + "/native-v1.0.0-node-v93-linux-x64.tar.gz"
        arm = locator.package_dir("native") + "/native-v1.0.0-node-v93-linux-arm64.tar.gz"
        with open(x64, "rb") as f:
            assert f.read() == b"x64 binary"
        assert not os.path.exists(arm)
        # both paths were checked, so both are kept by a prune
        assert os.path.abspath(x64) in context.required_files
        assert os.path.abspath(arm) in context.required_files

    def test_existing_binary_skipped(self, registry, locator):
        """An existing binary is not fetched again."""
        registry.publish("native", "1.0.0", binary=BINARY)
        url = "https://binaries.example.com/native/v1.0.0/native-v1.0.0-node-v93-linux-x64.tar.gz"
        registry.serve(url, b"x64 binary")
        variants = self.VARIANTS[:1]
        _download(registry, locator, [("native", ["1.0.0"])], variants=variants)

        _download(registry, locator, [("native", ["1.0.0"])], variants=variants)

        assert registry.count(url) == 1

    def test_versions_without_binary_skip_variants(self, registry, locator):
        """Versions without binary metadata request no binaries."""
        registry.publish("plain", "1.0.0")

        statuses, _ = _download(registry, locator, [("plain", ["1.0.0"])], variants=self.VARIANTS)

        assert statuses == ["Downloaded plain@1.0.0"]
        assert not any("binaries.example.com" in url for url in registry.requests)

    def test_one_status_per_version_regardless_of_variants(self, registry, locator):
        """Status lines are per version, not per variant."""
        registry.publish("native", "1.0.0", binary=BINARY)
        registry.publish("native", "1.1.0", binary=BINARY)

        statuses, _ = _download(
            registry, locator, [("native", ["1.0.0", "1.1.0"])], variants=self.VARIANTS
        )

        assert sorted(statuses) == ["Downloaded native@1.0.0", "Downloaded native@1.1.0"]


class TestConcurrency:
    """Tests for the workflow cap."""

    def test_at_most_five_packages_in_flight(self, registry, locator):
        """Workflows are capped at five and start in order."""
        active = {"now": 0, "max": 0}
        started = []

        async def fake_download(self, name, versions):
            started.append(name)
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
            await asyncio.sleep(0.01)
            active["now"] -= 1
            return [f"Downloaded {name}@{versions[0]}"]

        collected = [(f"pkg{i}", ["1.0.0"]) for i in range(12)]
        with patch.object(DownloadOrchestrator, "download", fake_download):
            statuses, _ = _download(registry, locator, collected)

        assert active["max"] == 5
        assert len(statuses) == 12
        assert started == [name for name, _ in collected]

    def test_fatal_error_cancels_siblings(self, registry, locator):
        """A fatal error cancels running workflows."""
        finished = []

        async def fake_download(self, name, versions):
            if name == "bad":
                raise ChecksumMismatchError(name, "1.0.0", "a", "b")
            await asyncio.sleep(0.05)
            finished.append(name)
            return []

        with patch.object(DownloadOrchestrator, "download", fake_download):
            with pytest.raises(ChecksumMismatchError):
                _download(registry, locator, [("slow", ["1.0.0"]), ("bad", ["1.0.0"])])

        assert finished == []
