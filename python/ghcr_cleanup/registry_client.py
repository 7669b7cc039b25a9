"""
Registry client for OCI distribution API operations against ghcr.io.

This module provides the manifest level operations the cleanup engine needs:
fetching manifests by digest or tag, resolving tags to digests and pushing a
manifest under a tag. Deleting package versions goes through the GitHub
packages API instead (see package_client.py).
"""

import hashlib
import json
from typing import Any, Dict, Optional

import requests

from ghcr_cleanup.cache_utils import TTLCache
from ghcr_cleanup.error_utils import (
    ManifestNotFoundError,
    create_registry_auth_error,
    create_registry_connection_error,
)
from ghcr_cleanup.http_client import HttpClient
from ghcr_cleanup.logging_utils import get_logger
from ghcr_cleanup.models import (
    DOCKER_MANIFEST_LIST_MEDIA_TYPE,
    DOCKER_MANIFEST_MEDIA_TYPE,
    OCI_INDEX_MEDIA_TYPE,
    OCI_MANIFEST_MEDIA_TYPE,
    Manifest,
    parse_manifest,
)

logger = get_logger(__name__)

MANIFEST_ACCEPT = ", ".join(
    [
        OCI_INDEX_MEDIA_TYPE,
        DOCKER_MANIFEST_LIST_MEDIA_TYPE,
        OCI_MANIFEST_MEDIA_TYPE,
        DOCKER_MANIFEST_MEDIA_TYPE,
    ]
)


class RegistryClient(HttpClient):
    """Client for the manifest endpoints of one registry repository"""

    def __init__(self, config_manager, session: Optional[requests.Session] = None):
        """Initialize RegistryClient.

        Args:
            config_manager: ConfigManager instance for accessing configuration
            session: Optional requests session (tests pass a mocked one)
        """
        super().__init__(config_manager, session)
        self.registry_url = config_manager.get_registry_url()
        self.owner = config_manager.get_owner()
        self.package = config_manager.get_package()
        self.token = config_manager.get_token()
        self._logged_in = False

        # tag -> digest; invalidated by delete_tag once a tag is repointed
        self._tag_digests: TTLCache[str] = TTLCache(ttl_seconds=config_manager.get_tag_digest_cache_ttl())

    @property
    def repository_path(self) -> str:
        """Repository path inside the registry; ghcr.io names are lowercase"""
        return f"{self.owner}/{self.package}".lower()

    def _manifest_url(self, reference: str) -> str:
        return f"https://{self.registry_url}/v2/{self.repository_path}/manifests/{reference}"

    def login(self) -> None:
        """Exchange the GitHub token for a registry bearer token.

        Raises:
            RegistryAuthError: If the registry rejects the credentials
        """
        url = f"https://{self.registry_url}/token"
        params = {"service": self.registry_url, "scope": f"repository:{self.repository_path}:pull,push"}

        try:
            response = self._send("GET", url, params=params, auth=(self.owner, self.token))
        except requests.RequestException as e:
            raise create_registry_connection_error(self.registry_url, e)

        if response.status_code in (401, 403):
            raise create_registry_auth_error(
                self.registry_url, requests.HTTPError(f"{response.status_code} {response.text}", response=response)
            )
        if not response.ok:
            raise create_registry_connection_error(
                self.registry_url, requests.HTTPError(f"{response.status_code} {response.text}", response=response)
            )

        data = response.json()
        token = data.get("token") or data.get("access_token")
        if not token:
            raise create_registry_auth_error(self.registry_url, ValueError("token endpoint returned no token"))

        self.session.headers["Authorization"] = f"Bearer {token}"
        self._logged_in = True
        logger.info(f"Logged in to registry: {self.registry_url}")

    def _ensure_logged_in(self) -> None:
        if not self._logged_in:
            self.login()

    def _request(self, method: str, reference: str, **kwargs: Any) -> requests.Response:
        """Send a manifest request and map error statuses.

        Raises:
            ManifestNotFoundError: On 404
            RegistryAuthError: On 401/403
            ActionableError: On other failures
        """
        self._ensure_logged_in()
        try:
            response = self._send(method, self._manifest_url(reference), **kwargs)
        except requests.RequestException as e:
            raise create_registry_connection_error(self.registry_url, e)

        if response.status_code == 404:
            raise ManifestNotFoundError(reference)
        if response.status_code in (401, 403):
            raise create_registry_auth_error(
                self.registry_url, requests.HTTPError(f"{response.status_code} {response.text}", response=response)
            )
        if not response.ok:
            raise create_registry_connection_error(
                self.registry_url,
                requests.HTTPError(f"{method} {reference}: {response.status_code} {response.text}", response=response),
            )
        return response

    def get_manifest(self, reference: str) -> Manifest:
        """Fetch and parse the manifest for a digest or tag."""
        response = self._request("GET", reference, headers={"Accept": MANIFEST_ACCEPT})
        return parse_manifest(response.json())

    def get_manifest_by_digest(self, digest: str) -> Manifest:
        return self.get_manifest(digest)

    def get_manifest_by_tag(self, tag: str) -> Manifest:
        return self.get_manifest(tag)

    def get_tag_digest(self, tag: str) -> str:
        """Resolve a tag to the digest it currently points to.

        Results are cached until delete_tag(tag) is called or the TTL expires.
        """
        cached = self._tag_digests.get(tag)
        if cached is not None:
            return cached

        response = self._request("HEAD", tag, headers={"Accept": MANIFEST_ACCEPT})
        digest = response.headers.get("Docker-Content-Digest")
        if not digest:
            # Some registries omit the header on HEAD; hash the body instead
            response = self._request("GET", tag, headers={"Accept": MANIFEST_ACCEPT})
            digest = response.headers.get("Docker-Content-Digest") or (
                "sha256:" + hashlib.sha256(response.content).hexdigest()
            )

        self._tag_digests.set(tag, digest)
        return digest

    def put_manifest(self, tag: str, manifest: Dict[str, Any], is_index: bool) -> None:
        """Push a manifest body under a tag, repointing the tag to the new digest."""
        media_type = manifest.get("mediaType") or (OCI_INDEX_MEDIA_TYPE if is_index else OCI_MANIFEST_MEDIA_TYPE)

        if self.dry_run:
            logger.info(f"dry-run: would push {media_type} manifest for tag {tag}")
            return

        self._request(
            "PUT",
            tag,
            data=json.dumps(manifest).encode("utf-8"),
            headers={"Content-Type": media_type},
        )
        self.logger.debug(f"Pushed {media_type} manifest for tag {tag}")

    def delete_tag(self, tag: str) -> None:
        """Forget the cached digest of a tag.

        The registry has no tag deletion endpoint; this only ensures the next
        get_tag_digest(tag) asks the registry again.
        """
        self._tag_digests.remove(tag)
