"""Unit tests for ghcr_cleanup/models.py"""

from datetime import datetime, timezone

from ghcr_cleanup.models import (
    IndexManifest,
    LeafManifest,
    PackageEntry,
    is_referrer_tag,
    parse_manifest,
    parse_timestamp,
    referrer_parent_digest,
    referrer_tag,
)


class TestReferrerTags:
    def test_digest_to_tag_and_back(self):
        assert referrer_tag("sha256:abc") == "sha256-abc"
        assert referrer_parent_digest("sha256-abc") == "sha256:abc"

    def test_is_referrer_tag(self):
        assert is_referrer_tag("sha256-abc")
        assert not is_referrer_tag("v1")


class TestParseTimestamp:
    def test_github_format(self):
        assert parse_timestamp("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)

    def test_naive_value_is_utc(self):
        assert parse_timestamp("2024-03-01T10:00:00").tzinfo == timezone.utc

    def test_missing_or_invalid(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None
        assert parse_timestamp("yesterday") is None


class TestPackageEntry:
    """Tests for PackageEntry.from_api"""

    def test_from_api(self):
        entry = PackageEntry.from_api({
            "id": 42,
            "name": "sha256:abc",
            "updated_at": "2024-03-01T10:00:00Z",
            "metadata": {"package_type": "container", "container": {"tags": ["v1", "latest"]}},
        })
        assert entry.id == 42
        assert entry.digest == "sha256:abc"
        assert entry.tags == ("v1", "latest")
        assert entry.is_tagged
        assert entry.describe() == "sha256:abc v1,latest"

    def test_from_api_without_metadata(self):
        entry = PackageEntry.from_api({"id": 1, "name": "sha256:abc"})
        assert entry.tags == ()
        assert entry.updated_at is None
        assert not entry.is_tagged
        assert entry.describe() == "sha256:abc"


class TestParseManifest:
    """Tests for parse_manifest and the leaf/index variants"""

    def test_index_manifest(self):
        body = {
            "mediaType": "application/vnd.oci.image.index.v1+json",
            "manifests": [
                {"digest": "sha256:a", "platform": {"architecture": "arm64", "variant": "v8", "os": "linux"}},
                {"digest": "sha256:b", "artifactType": "application/vnd.dev.sigstore.bundle.v0.3+json"},
            ],
        }
        manifest = parse_manifest(body)

        assert isinstance(manifest, IndexManifest)
        assert manifest.is_index
        assert [c.digest for c in manifest.children] == ["sha256:a", "sha256:b"]
        assert manifest.children[0].platform.architecture == "arm64"
        assert manifest.children[0].platform.variant == "v8"
        assert manifest.children[1].platform is None
        assert manifest.children[1].artifact_type.startswith("application/vnd.dev.sigstore.bundle")

    def test_empty_manifests_list_is_still_an_index(self):
        assert parse_manifest({"manifests": []}).is_index

    def test_leaf_manifest(self):
        manifest = parse_manifest({"layers": [{"mediaType": "application/vnd.in-toto+json", "digest": "sha256:l"}]})
        assert isinstance(manifest, LeafManifest)
        assert not manifest.is_index
        assert manifest.layer_media_types == ("application/vnd.in-toto+json",)
        assert manifest.media_type == "application/vnd.oci.image.manifest.v1+json"

    def test_emptied_is_a_deep_copy(self):
        body = {"mediaType": "application/vnd.oci.image.index.v1+json", "manifests": [{"digest": "sha256:a"}]}
        manifest = parse_manifest(body)

        emptied = manifest.emptied()

        assert emptied["manifests"] == []
        assert emptied["mediaType"] == body["mediaType"]
        assert body["manifests"] == [{"digest": "sha256:a"}]

    def test_leaf_emptied_drops_layers(self):
        body = {"config": {"digest": "sha256:c"}, "layers": [{"digest": "sha256:l"}]}
        emptied = parse_manifest(body).emptied()
        assert emptied["layers"] == []
        assert emptied["config"] == {"digest": "sha256:c"}
        assert body["layers"] == [{"digest": "sha256:l"}]
