"""
GitHub packages API client.

Loads the package versions of one container package and deletes versions by
id. Package version listings are paged; each page is cached together with its
ETag so a reload only transfers pages that changed.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple
from urllib.parse import quote

import requests

from ghcr_cleanup.error_utils import PackageNotFoundError, create_github_api_error, create_rate_limit_error
from ghcr_cleanup.http_client import HttpClient
from ghcr_cleanup.logging_utils import get_logger
from ghcr_cleanup.models import PackageEntry

logger = get_logger(__name__)

PER_PAGE = 100


class GithubPackageClient(HttpClient):
    """Client for the package versions of one GitHub container package"""

    def __init__(self, config_manager, session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize GithubPackageClient.

        Args:
            config_manager: ConfigManager instance for accessing configuration
            session: Optional requests session (tests pass a mocked one)
            sleep: Sleep function used while waiting out a rate limit
        """
        super().__init__(config_manager, session)
        self.api_url = config_manager.get_api_url()
        self.owner = config_manager.get_owner()
        self.package = config_manager.get_package()
        self._sleep = sleep
        self.session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {config_manager.get_token()}",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )

        # "orgs" or "users", resolved by init()
        self.owner_type: Optional[str] = None

        # page url -> (etag, items, next page url)
        self._page_cache: Dict[str, Tuple[str, List[Dict[str, Any]], Optional[str]]] = {}

        # digest -> entry, in listing order
        self._packages: Dict[str, PackageEntry] = {}
        self._tag_digests: Dict[str, str] = {}

    def init(self) -> None:
        """Resolve whether the package owner is a user or an organisation"""
        response = self._api("GET", f"/users/{self.owner}", "resolve package owner")
        self.owner_type = "orgs" if response.json().get("type") == "Organization" else "users"
        logger.debug(f"Package owner {self.owner} is a {self.owner_type[:-1]}")

    @property
    def versions_url(self) -> str:
        if self.owner_type is None:
            raise RuntimeError("GithubPackageClient.init() must be called before using the versions API")
        package = quote(self.package, safe="")
        return f"{self.api_url}/{self.owner_type}/{self.owner}/packages/container/{package}/versions"

    @staticmethod
    def _rate_limit(response: requests.Response) -> Optional[Tuple[str, float]]:
        """Classify a throttled response as ("primary" | "secondary", seconds to wait)"""
        if response.status_code not in (403, 429):
            return None

        retry_after = response.headers.get("retry-after")
        if "secondary rate limit" in response.text.lower():
            return "secondary", float(retry_after or 60)

        if response.headers.get("x-ratelimit-remaining") == "0":
            if retry_after:
                return "primary", float(retry_after)
            reset = response.headers.get("x-ratelimit-reset")
            return "primary", max(0.0, float(reset) - time.time()) if reset else 60.0

        if retry_after:
            return "primary", float(retry_after)
        return None

    def _api(self, method: str, url: str, operation: str,
             expected: Sequence[int] = (200,), **kwargs: Any) -> requests.Response:
        """Call the GitHub API, applying the rate limit policy.

        A primary rate limit is waited out and retried once; a second one is
        fatal. A secondary rate limit is only reported and the response is
        handled like any other failure.
        """
        if not url.startswith("http"):
            url = f"{self.api_url}{url}"

        throttled = 0
        while True:
            try:
                response = self._send(method, url, **kwargs)
            except requests.RequestException as e:
                raise create_github_api_error(operation, None, e)

            rate_limit = self._rate_limit(response)
            if rate_limit is None:
                break

            kind, wait = rate_limit
            if kind == "secondary":
                self.logger.warning(f"SecondaryRateLimit detected for request {method} {url}")
                break

            self.logger.warning(f"Request quota exhausted for request {method} {url}")
            if throttled >= 1:
                raise create_rate_limit_error(f"{method} {url}", retry_after=wait)
            throttled += 1
            self.logger.info(f"Retrying after {wait:.0f} seconds!")
            self._sleep(wait)

        if response.status_code not in expected:
            raise create_github_api_error(
                operation,
                response.status_code,
                requests.HTTPError(f"{response.status_code} {response.text}", response=response),
            )
        return response

    def _fetch_page(self, url: str) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """Fetch one listing page, reusing the cached copy when unchanged"""
        cached = self._page_cache.get(url)
        headers = {"If-None-Match": cached[0]} if cached else {}

        response = self._api("GET", url, "list package versions", expected=(200, 304), headers=headers)
        if response.status_code == 304 and cached:
            return cached[1], cached[2]

        items = response.json()
        next_url = response.links.get("next", {}).get("url")
        etag = response.headers.get("ETag")
        if etag:
            self._page_cache[url] = (etag, items, next_url)
        return items, next_url

    def load_packages(self, reset_page_cache: bool = False) -> None:
        """(Re)load every version of the package.

        Args:
            reset_page_cache: Drop cached pages so every page is transferred again
        """
        if reset_page_cache:
            self._page_cache.clear()

        packages: Dict[str, PackageEntry] = {}
        url: Optional[str] = f"{self.versions_url}?per_page={PER_PAGE}"
        while url:
            items, url = self._fetch_page(url)
            for item in items:
                entry = PackageEntry.from_api(item)
                packages[entry.digest] = entry

        tag_digests: Dict[str, str] = {}
        for entry in packages.values():
            for tag in entry.tags:
                tag_digests[tag] = entry.digest

        self._packages = packages
        self._tag_digests = tag_digests
        self.logger.debug(f"Loaded {len(packages)} package versions with {len(tag_digests)} tags")

    def get_digests(self) -> Set[str]:
        return set(self._packages)

    def ordered_digests(self) -> List[str]:
        """Digests in listing order (most recently updated first, as the API returns them)"""
        return list(self._packages)

    def get_tags(self) -> Set[str]:
        return set(self._tag_digests)

    def get_digest_by_tag(self, tag: str) -> Optional[str]:
        return self._tag_digests.get(tag)

    def get_package_by_digest(self, digest: str) -> PackageEntry:
        """Return the loaded entry for a digest.

        Raises:
            PackageNotFoundError: If the digest is not part of the loaded listing
        """
        try:
            return self._packages[digest]
        except KeyError:
            raise PackageNotFoundError(digest) from None

    def get_id_by_digest(self, digest: str) -> Optional[int]:
        entry = self._packages.get(digest)
        return entry.id if entry else None

    def delete_package_version(self, package_id: int, digest: str, tags: Sequence[str],
                               label: Optional[str] = None) -> None:
        """Delete a package version, or only log it in dry-run mode."""
        if tags:
            message = f" deleting package id: {package_id} digest: {digest} tag: {','.join(tags)}"
        elif label:
            message = f" deleting package id: {package_id} digest: {digest} {label}"
        else:
            message = f" deleting package id: {package_id} digest: {digest}"

        if self.dry_run:
            logger.info(f"dry-run:{message}")
            return

        logger.info(message)
        self._api("DELETE", f"{self.versions_url}/{package_id}", f"delete package version {package_id}",
                  expected=(200, 204))
