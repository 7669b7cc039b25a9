"""
Cascading deletion of the delete set.

Deleting a multi-architecture image also deletes the children no surviving
image still references, and deleting any image deletes its referrer
artifacts (attestations, signatures) pushed under the sha256-<hex> tag.
"""

from typing import Optional

from ghcr_cleanup.error_utils import PackageNotFoundError
from ghcr_cleanup.graph import DependencyGraph
from ghcr_cleanup.logging_utils import get_logger
from ghcr_cleanup.models import IN_TOTO_MEDIA_TYPE, SIGSTORE_BUNDLE_PREFIX, ChildDescriptor, PackageEntry, referrer_tag
from ghcr_cleanup.report_utils import format_deletion_plan
from ghcr_cleanup.state import CleanupState, CleanupStats

logger = get_logger(__name__)


def build_label(child: ChildDescriptor, graph: DependencyGraph) -> str:
    """Describe a child manifest for the deletion log.

    Platform children are labelled with their architecture (and variant).
    Buildx attestations use the "unknown" platform; they are recognised by an
    in-toto first layer. Referrer artifacts are labelled by artifact type.
    """
    if child.platform:
        architecture = child.platform.architecture or ""
        if architecture != "unknown":
            if child.platform.variant:
                architecture += f"/{child.platform.variant}"
            return f"architecture: {architecture}"

        manifest = graph.manifest(child.digest)
        if not manifest.is_index and manifest.layer_media_types[:1] == (IN_TOTO_MEDIA_TYPE,):
            return IN_TOTO_MEDIA_TYPE
        return architecture

    if child.artifact_type:
        if child.artifact_type.startswith(SIGSTORE_BUNDLE_PREFIX):
            return "sigstore attestation"
        return child.artifact_type
    return ""


class CascadingDeleter:
    """Deletes images and everything only they reference.

    Bookkeeping lives in the CleanupState of the current reload (the reference
    map of its graph and the deleted set); counters go to the run wide stats.
    """

    def __init__(self, state: CleanupState, registry, packages, stats: CleanupStats):
        self.state = state
        self.graph = state.graph
        self.registry = registry
        self.packages = packages
        self.stats = stats

    def _mark_deleted(self, digest: str) -> None:
        self.state.deleted.add(digest)
        self.stats.images_deleted += 1
        self.stats.deleted_digests.append(digest)

    def delete_image(self, entry: PackageEntry, label: Optional[str] = None) -> None:
        """Delete one image, then cascade to its children and referrers.

        Calling it again for an already deleted digest does nothing.
        """
        if entry.digest in self.state.deleted:
            return

        # the manifest is needed to find the children after the image is gone
        manifest = self.graph.manifest(entry.digest)

        self.packages.delete_package_version(entry.id, entry.digest, entry.tags, label)
        self._mark_deleted(entry.digest)

        if manifest.is_index:
            self.stats.multi_arch_images_deleted += 1
            for child in manifest.children:
                self._release_child(entry, child)

        self._delete_referrer(entry)

    def _release_child(self, parent: PackageEntry, child: ChildDescriptor) -> None:
        """Drop the parent's reference on a child; delete the child once unreferenced"""
        try:
            child_entry = self.packages.get_package_by_digest(child.digest)
        except PackageNotFoundError:
            logger.info(f" skipping digest {child.digest}, not found")
            return

        if child_entry.digest in self.state.deleted:
            return

        parents = self.graph.parents_of(child_entry.digest)
        if parents is None:
            # the reference map should always cover known children
            logger.info(f" reference map not correctly set up for {child_entry.digest}")
            return

        if parents == {parent.digest}:
            self.packages.delete_package_version(
                child_entry.id, child_entry.digest, (), build_label(child, self.graph)
            )
            self._mark_deleted(child_entry.digest)
            self.graph.forget(child_entry.digest)
        else:
            logger.info(
                f" skipping package id: {child_entry.id} digest: {child_entry.digest} as it's in use by another image"
            )
            self.graph.remove_parent(child_entry.digest, parent.digest)

    def _delete_referrer(self, entry: PackageEntry) -> None:
        tag = referrer_tag(entry.digest)
        if tag not in self.state.tags_in_use or self.state.is_excluded(tag):
            return

        referrer_digest = self.registry.get_tag_digest(tag)
        try:
            referrer = self.packages.get_package_by_digest(referrer_digest)
        except PackageNotFoundError:
            logger.info(f" skipping referrer tag {tag}, digest {referrer_digest} not found")
            return
        self.delete_image(referrer)

    def do_delete(self) -> None:
        """Delete every image in the delete set, in listing order"""
        digests = self.state.ordered(self.state.delete_set)
        if not digests:
            logger.info("Nothing to delete")
            return

        entries = [self.packages.get_package_by_digest(digest) for digest in digests]
        logger.info("Deleting packages")
        logger.info("\n" + format_deletion_plan(entries))
        for entry in entries:
            self.delete_image(entry)
