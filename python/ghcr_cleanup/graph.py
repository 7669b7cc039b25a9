"""
Dependency graph between multi-architecture index manifests and their children.

The graph holds the manifest of every known digest (fetched once per reload)
and the reference map: child digest -> digests of the index manifests that
list it. Only children that are themselves known package digests are
recorded; missing children are what ghost/partial detection looks for.
"""

import json
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ghcr_cleanup.error_utils import ErrorCategory, GraphInconsistencyError, ManifestNotFoundError
from ghcr_cleanup.logging_utils import get_logger, log_group
from ghcr_cleanup.models import ChildDescriptor, Manifest

logger = get_logger(__name__)


class DependencyGraph:
    """Manifests and child -> parents reference map of one reload"""

    def __init__(self, registry, known_digests: Iterable[str]):
        self.registry = registry
        self.known_digests: Set[str] = set(known_digests)
        self.manifests: Dict[str, Manifest] = {}
        self.used_by: Dict[str, Set[str]] = {}

    def manifest(self, digest: str) -> Manifest:
        """Manifest of a digest, fetched on first use"""
        manifest = self.manifests.get(digest)
        if manifest is None:
            manifest = self.registry.get_manifest_by_digest(digest)
            self.manifests[digest] = manifest
        return manifest

    def children_of(self, digest: str) -> Tuple[ChildDescriptor, ...]:
        """Child descriptors of an index manifest; empty for leaf manifests"""
        manifest = self.manifest(digest)
        return manifest.children if manifest.is_index else ()

    def missing_children(self, digest: str) -> List[ChildDescriptor]:
        """Children of an index whose digest is not a known package"""
        return [child for child in self.children_of(digest) if child.digest not in self.known_digests]

    def add_edge(self, child: str, parent: str) -> None:
        self.used_by.setdefault(child, set()).add(parent)

    def parents_of(self, child: str) -> Optional[Set[str]]:
        """Recorded parents of a child, or None if the child was never recorded"""
        return self.used_by.get(child)

    def remove_parent(self, child: str, parent: str) -> None:
        parents = self.used_by.get(child)
        if parents is not None:
            parents.discard(parent)

    def forget(self, child: str) -> None:
        """Drop a child's reference map entry once its last parent is gone"""
        self.used_by.pop(child, None)


def build_dependency_graph(registry, packages, dump_manifests: bool = False) -> DependencyGraph:
    """Fetch the manifest of every known digest and map children back to their parents.

    Args:
        registry: RegistryClient used to fetch manifests
        packages: GithubPackageClient with the current listing loaded
        dump_manifests: Log every manifest as JSON (debug level)

    Raises:
        GraphInconsistencyError: If a listed package version has no manifest
    """
    digests = packages.ordered_digests()
    graph = DependencyGraph(registry, digests)

    for digest in digests:
        try:
            manifest = graph.manifest(digest)
        except ManifestNotFoundError as e:
            raise GraphInconsistencyError(
                message=f"Manifest for package version {digest} not found in the registry",
                category=ErrorCategory.INCONSISTENCY,
                suggestions=[
                    "Re-run the cleanup; the package listing and the registry may be briefly out of sync",
                    "Check the package has not been deleted by another job during this run",
                ],
                details={"digest": digest, "error_message": str(e)},
            ) from e

        if manifest.is_index:
            for child in manifest.children:
                if child.digest in graph.known_digests:
                    graph.add_edge(child.digest, digest)

    if dump_manifests:
        with log_group(logger, "Image Manifests"):
            for digest, manifest in graph.manifests.items():
                logger.debug(f"{digest}:{json.dumps(manifest.raw, indent=4)}")

    return graph
