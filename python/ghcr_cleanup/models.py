"""Data model shared by the registry client, the package client and the cleanup engine"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Union

DIGEST_PREFIX = "sha256:"
REFERRER_TAG_PREFIX = "sha256-"

OCI_INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
OCI_MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
DOCKER_MANIFEST_LIST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"

IN_TOTO_MEDIA_TYPE = "application/vnd.in-toto+json"
SIGSTORE_BUNDLE_PREFIX = "application/vnd.dev.sigstore.bundle"


def referrer_tag(digest: str) -> str:
    """Tag under which the referrer/attestation artifact of a digest is pushed.

    sha256:<hex> -> sha256-<hex>
    """
    return digest.replace(DIGEST_PREFIX, REFERRER_TAG_PREFIX, 1)


def is_referrer_tag(tag: str) -> bool:
    return tag.startswith(REFERRER_TAG_PREFIX)


def referrer_parent_digest(tag: str) -> str:
    """Digest a referrer tag belongs to: sha256-<hex> -> sha256:<hex>"""
    return tag.replace(REFERRER_TAG_PREFIX, DIGEST_PREFIX, 1)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp as returned by the GitHub API.

    Returns None for empty or unparseable values. Naive values are taken as UTC.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class PackageEntry:
    """A package version: the metadata record binding an id, a digest and its tags"""

    id: int
    digest: str
    tags: Tuple[str, ...] = ()
    updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "PackageEntry":
        """Build an entry from a GitHub package version JSON object"""
        container = (data.get("metadata") or {}).get("container") or {}
        return cls(
            id=data["id"],
            digest=data["name"],
            tags=tuple(container.get("tags") or ()),
            updated_at=parse_timestamp(data.get("updated_at")),
        )

    @property
    def is_tagged(self) -> bool:
        return len(self.tags) > 0

    def describe(self) -> str:
        """Digest followed by its tags, for log lines"""
        if self.tags:
            return f"{self.digest} {','.join(self.tags)}"
        return self.digest


@dataclass(frozen=True)
class Platform:
    architecture: Optional[str] = None
    variant: Optional[str] = None
    os: Optional[str] = None


@dataclass(frozen=True)
class ChildDescriptor:
    """An entry of an index manifest's manifests list"""

    digest: str
    media_type: Optional[str] = None
    platform: Optional[Platform] = None
    artifact_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChildDescriptor":
        platform = data.get("platform")
        return cls(
            digest=data["digest"],
            media_type=data.get("mediaType"),
            platform=Platform(
                architecture=platform.get("architecture"),
                variant=platform.get("variant"),
                os=platform.get("os"),
            ) if platform else None,
            artifact_type=data.get("artifactType"),
        )


@dataclass(frozen=True)
class LeafManifest:
    """A single image (or artifact) manifest: content layers, no children"""

    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    layer_media_types: Tuple[str, ...] = ()

    is_index = False

    @property
    def media_type(self) -> str:
        return self.raw.get("mediaType") or OCI_MANIFEST_MEDIA_TYPE

    def emptied(self) -> Dict[str, Any]:
        """Deep copy of the manifest body with its layer list emptied"""
        body = copy.deepcopy(self.raw)
        body["layers"] = []
        return body


@dataclass(frozen=True)
class IndexManifest:
    """A multi-architecture image index: an ordered list of child descriptors"""

    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    children: Tuple[ChildDescriptor, ...] = ()

    is_index = True

    @property
    def media_type(self) -> str:
        return self.raw.get("mediaType") or OCI_INDEX_MEDIA_TYPE

    def emptied(self) -> Dict[str, Any]:
        """Deep copy of the manifest body with its child list emptied"""
        body = copy.deepcopy(self.raw)
        body["manifests"] = []
        return body


Manifest = Union[LeafManifest, IndexManifest]


def parse_manifest(body: Dict[str, Any]) -> Manifest:
    """Parse a manifest body; the presence of a manifests list makes it an index."""
    if isinstance(body.get("manifests"), list):
        return IndexManifest(
            raw=body,
            children=tuple(ChildDescriptor.from_dict(m) for m in body["manifests"]),
        )
    return LeafManifest(
        raw=body,
        layer_media_types=tuple(layer.get("mediaType", "") for layer in body.get("layers") or ()),
    )
