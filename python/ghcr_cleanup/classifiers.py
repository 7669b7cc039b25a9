"""
Retention policy classifiers.

Each classifier reads the package metadata of the digests in the filter set
and moves the ones its policy selects into the delete set. Explicit tag
deletion additionally implements the untagging workaround for tags that share
their digest with other tags.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from ghcr_cleanup.logging_utils import get_logger, log_group
from ghcr_cleanup.models import PackageEntry
from ghcr_cleanup.state import CleanupState, CleanupStats
from ghcr_cleanup.tag_matching import TagMatcher

logger = get_logger(__name__)

GHOST = "ghost"
PARTIAL = "partial"

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


# ============================================================================
# Explicit tag deletion
# ============================================================================

def find_tag_deletions(state: CleanupState, registry, packages, delete_patterns: str) -> Tuple[List[str], List[str]]:
    """Match the delete patterns against every tag in use that is not excluded.

    A matched tag may share its digest with an excluded tag; untagging then
    removes only the matched tag.

    Returns:
        (standard tags, untagging tags): tags whose digest carries only that
        tag, and tags whose digest carries other tags as well
    """
    matched = TagMatcher(delete_patterns).filter(sorted(state.tags_in_use - state.exclude_tags))

    standard: List[str] = []
    untagging: List[str] = []
    for tag in matched:
        entry = packages.get_package_by_digest(registry.get_tag_digest(tag))
        if len(entry.tags) > 1:
            untagging.append(tag)
        elif len(entry.tags) == 1:
            standard.append(tag)
    return standard, untagging


def untag(tag: str, registry, packages) -> bool:
    """Detach one tag from a multi-tagged digest and delete it.

    The registry deletes every tag of a digest together, so the tag is first
    repointed to an empty copy of its manifest (a digest no other tag uses),
    then that new package version is deleted.

    Returns:
        True if the repointed version was found and deleted
    """
    manifest = registry.get_manifest_by_tag(tag)
    registry.put_manifest(tag, manifest.emptied(), manifest.is_index)

    # the tag now has a new digest
    registry.delete_tag(tag)
    packages.load_packages(False)

    untagged_digest = registry.get_tag_digest(tag)
    package_id = packages.get_id_by_digest(untagged_digest)
    if package_id is None:
        logger.info(f"couldn't find newly created package with digest {untagged_digest} to delete")
        return False

    packages.delete_package_version(package_id, untagged_digest, [tag])
    return True


def untag_all(tags: Sequence[str], registry, packages, stats: CleanupStats) -> List[str]:
    """Untag each tag that still shares its digest.

    A tag whose digest has become single-tagged in the meantime (for example
    because its sibling tags were untagged first) is returned for standard
    deletion instead.
    """
    deferred: List[str] = []
    for tag in tags:
        entry = packages.get_package_by_digest(registry.get_tag_digest(tag))
        if len(entry.tags) == 1:
            deferred.append(tag)
            continue

        logger.info(tag)
        if untag(tag, registry, packages):
            stats.images_deleted += 1
    return deferred


def select_tags(state: CleanupState, registry, tags: Sequence[str]) -> List[str]:
    """Move the digests of single-tagged matches into the delete set"""
    selected = []
    for tag in tags:
        logger.info(tag)
        digest = registry.get_tag_digest(tag)
        state.move_to_delete(digest)
        selected.append(digest)
    return selected


# ============================================================================
# Ghost / partial images
# ============================================================================

def classify_index(state: CleanupState, digest: str) -> Optional[str]:
    """Classify an image by its missing children.

    Returns:
        GHOST if no child is a known package (an empty index included),
        PARTIAL if some but not all are missing, None otherwise. Leaf
        manifests are never ghost or partial.
    """
    manifest = state.graph.manifest(digest)
    if not manifest.is_index:
        return None
    missing = len(state.graph.missing_children(digest))
    if missing == len(manifest.children):
        return GHOST
    if missing > 0:
        return PARTIAL
    return None


def _log_entry(packages, digest: str) -> None:
    logger.info(packages.get_package_by_digest(digest).describe())


def select_ghost_images(state: CleanupState, packages) -> List[str]:
    """Move images whose children are all missing into the delete set"""
    found = []
    with log_group(logger, "Finding Ghost Images"):
        for digest in state.candidates():
            if classify_index(state, digest) == GHOST:
                state.move_to_delete(digest)
                found.append(digest)
                _log_entry(packages, digest)
        if not found:
            logger.info("no ghost images found")
    return found


def select_partial_images(state: CleanupState, packages) -> List[str]:
    """Move images with any missing child into the delete set.

    Ghost images are included: an image missing every child is missing some.
    """
    found = []
    with log_group(logger, "Finding Partial Images"):
        for digest in state.candidates():
            if classify_index(state, digest) in (GHOST, PARTIAL):
                state.move_to_delete(digest)
                found.append(digest)
                _log_entry(packages, digest)
        if not found:
            logger.info("no partial images found")
    return found


# ============================================================================
# Keep newest N / untagged
# ============================================================================

def newest_first(entries: Sequence[PackageEntry]) -> List[PackageEntry]:
    """Sort descending by update time; ties keep their order, missing timestamps go last"""
    return sorted(entries, key=lambda entry: entry.updated_at or _OLDEST, reverse=True)


def _candidate_entries(state: CleanupState, packages, tagged: bool) -> List[PackageEntry]:
    entries = [packages.get_package_by_digest(digest) for digest in state.candidates()]
    return [entry for entry in entries if entry.is_tagged == tagged]


def select_keep_n_tagged(state: CleanupState, packages, keep: int) -> List[str]:
    """Keep the newest `keep` tagged images, move the rest into the delete set"""
    selected = []
    with log_group(logger, f"Finding tagged images to delete, keeping {keep} versions"):
        for entry in newest_first(_candidate_entries(state, packages, tagged=True))[keep:]:
            state.move_to_delete(entry.digest)
            selected.append(entry.digest)
            logger.info(entry.describe())
        if not selected:
            logger.info("no tagged images found to delete")
    return selected


def select_keep_n_untagged(state: CleanupState, packages, keep: int) -> List[str]:
    """Keep the newest `keep` untagged images, move the rest into the delete set"""
    selected = []
    with log_group(logger, f"Finding untagged images to delete, keeping {keep} versions"):
        for entry in newest_first(_candidate_entries(state, packages, tagged=False))[keep:]:
            state.move_to_delete(entry.digest)
            selected.append(entry.digest)
            logger.info(entry.digest)
        if not selected:
            logger.info("no untagged images found to delete")
    return selected


def select_untagged(state: CleanupState, packages) -> List[str]:
    """Move every untagged image into the delete set"""
    selected = []
    with log_group(logger, "Finding all untagged images"):
        for entry in _candidate_entries(state, packages, tagged=False):
            state.move_to_delete(entry.digest)
            selected.append(entry.digest)
            logger.info(entry.digest)
        if not selected:
            logger.info("no untagged images found")
    return selected
