"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides in-memory registry and package collaborators for engine tests.
"""
import hashlib
import json
import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

from ghcr_cleanup.config_manager import ConfigManager  # noqa: E402
from ghcr_cleanup.error_utils import ManifestNotFoundError, PackageNotFoundError  # noqa: E402
from ghcr_cleanup.models import (  # noqa: E402
    IN_TOTO_MEDIA_TYPE,
    OCI_INDEX_MEDIA_TYPE,
    OCI_MANIFEST_MEDIA_TYPE,
    PackageEntry,
    parse_manifest,
)

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(days: int) -> datetime:
    """BASE_TIME plus a number of days"""
    return BASE_TIME + timedelta(days=days)


def leaf_body(layers=("application/vnd.oci.image.layer.v1.tar+gzip",)):
    return {
        "schemaVersion": 2,
        "mediaType": OCI_MANIFEST_MEDIA_TYPE,
        "config": {"mediaType": "application/vnd.oci.image.config.v1+json", "digest": "sha256:config"},
        "layers": [{"mediaType": media_type, "digest": f"sha256:layer{i}"} for i, media_type in enumerate(layers)],
    }


def index_body(children):
    """Index manifest body; children are digests or (digest, descriptor extras) tuples"""
    manifests = []
    for child in children:
        if isinstance(child, tuple):
            digest, extra = child
        else:
            digest, extra = child, {"platform": {"architecture": "amd64", "os": "linux"}}
        manifests.append({"mediaType": OCI_MANIFEST_MEDIA_TYPE, "digest": digest, **extra})
    return {"schemaVersion": 2, "mediaType": OCI_INDEX_MEDIA_TYPE, "manifests": manifests}


class FakePackages:
    """In-memory package listing with GithubPackageClient's interface.

    `remote` is the server side state; the getters read the snapshot taken by
    the last load_packages() call, like the real client.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.remote = {}
        self._next_id = 1
        self._loaded = {}
        self.deleted = []
        self.load_calls = []
        self.initialized = False

    def add(self, digest, tags=(), updated_at=None):
        entry = PackageEntry(id=self._next_id, digest=digest, tags=tuple(tags), updated_at=updated_at)
        self._next_id += 1
        self.remote[digest] = entry
        return entry

    def move_tag(self, tag, new_digest, updated_at=None):
        for digest, entry in list(self.remote.items()):
            if tag in entry.tags:
                self.remote[digest] = replace(entry, tags=tuple(t for t in entry.tags if t != tag))
        if new_digest in self.remote:
            entry = self.remote[new_digest]
            self.remote[new_digest] = replace(entry, tags=entry.tags + (tag,))
        else:
            self.add(new_digest, (tag,), updated_at)

    def init(self):
        self.initialized = True

    def load_packages(self, reset_page_cache=False):
        self.load_calls.append(reset_page_cache)
        self._loaded = dict(self.remote)

    def get_digests(self):
        return set(self._loaded)

    def ordered_digests(self):
        return list(self._loaded)

    def get_tags(self):
        return {tag for entry in self._loaded.values() for tag in entry.tags}

    def get_digest_by_tag(self, tag):
        for entry in self._loaded.values():
            if tag in entry.tags:
                return entry.digest
        return None

    def get_package_by_digest(self, digest):
        try:
            return self._loaded[digest]
        except KeyError:
            raise PackageNotFoundError(digest) from None

    def get_id_by_digest(self, digest):
        entry = self._loaded.get(digest)
        return entry.id if entry else None

    def delete_package_version(self, package_id, digest, tags, label=None):
        self.deleted.append((package_id, digest, tuple(tags), label))
        if not self.dry_run:
            self.remote.pop(digest, None)

    @property
    def deleted_digests(self):
        return [digest for _, digest, _, _ in self.deleted]


class FakeRegistry:
    """In-memory registry with RegistryClient's interface"""

    def __init__(self, packages: FakePackages, dry_run: bool = False):
        self.packages = packages
        self.dry_run = dry_run
        self.manifests = {}
        self.tags = {}
        self.puts = []
        self.deleted_tags = []
        self.manifest_fetches = []
        self.logged_in = False

    def login(self):
        self.logged_in = True

    def get_manifest_by_digest(self, digest):
        self.manifest_fetches.append(digest)
        if digest not in self.manifests:
            raise ManifestNotFoundError(digest)
        return parse_manifest(self.manifests[digest])

    def get_manifest_by_tag(self, tag):
        return self.get_manifest_by_digest(self.get_tag_digest(tag))

    def get_tag_digest(self, tag):
        if tag not in self.tags:
            raise ManifestNotFoundError(tag)
        return self.tags[tag]

    def put_manifest(self, tag, manifest, is_index):
        self.puts.append((tag, manifest, is_index))
        if self.dry_run:
            return
        digest = "sha256:" + hashlib.sha256(json.dumps(manifest, sort_keys=True).encode()).hexdigest()
        self.manifests[digest] = manifest
        self.tags[tag] = digest
        self.packages.move_tag(tag, digest)

    def delete_tag(self, tag):
        self.deleted_tags.append(tag)


class FakeRepo:
    """A package with its registry; images are registered in listing order"""

    def __init__(self, dry_run: bool = False):
        self.packages = FakePackages(dry_run=dry_run)
        self.registry = FakeRegistry(self.packages, dry_run=dry_run)

    def _register(self, digest, body, tags, updated_at, listed):
        self.registry.manifests[digest] = body
        for tag in tags:
            self.registry.tags[tag] = digest
        if listed:
            return self.packages.add(digest, tags, updated_at)
        return None

    def add_image(self, digest, tags=(), updated_at=None, layers=None, listed=True):
        body = leaf_body(layers) if layers else leaf_body()
        return self._register(digest, body, tags, updated_at, listed)

    def add_index(self, digest, children, tags=(), updated_at=None, listed=True):
        return self._register(digest, index_body(children), tags, updated_at, listed)

    def add_attestation(self, parent_digest, digest, updated_at=None):
        """Leaf pushed under the sha256-<hex> referrer tag of parent_digest"""
        tag = parent_digest.replace("sha256:", "sha256-", 1)
        return self.add_image(digest, (tag,), updated_at, layers=(IN_TOTO_MEDIA_TYPE,))

    def load(self):
        self.packages.load_packages(True)


@pytest.fixture
def repo():
    return FakeRepo()


@pytest.fixture
def dry_run_repo():
    return FakeRepo(dry_run=True)


@pytest.fixture
def make_config(tmp_path):
    """Build a ConfigManager from option overrides, isolated from the environment"""

    def _make(environ=None, **options):
        overrides = {"token": "ghp_test", "owner": "acme", "package": "app"}
        overrides.update(options)
        return ConfigManager(
            config_file=str(tmp_path / "missing.yaml"),
            overrides=overrides,
            environ=environ if environ is not None else {},
            validate=False,
        )

    return _make
