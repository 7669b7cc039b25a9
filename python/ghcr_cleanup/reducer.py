"""
Candidate set reduction.

Starting from every known digest, removes the digests the retention policies
must never look at directly: children of multi-architecture images, referrer
and attestation artifacts, digests carrying an excluded tag and digests newer
than the age cutoff. What remains in the filter set are top-level images.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Set

from ghcr_cleanup.logging_utils import get_logger, log_group
from ghcr_cleanup.models import referrer_tag
from ghcr_cleanup.state import CleanupState
from ghcr_cleanup.tag_matching import TagMatcher

logger = get_logger(__name__)


def find_excluded_tags(tags_in_use: Iterable[str], exclude_patterns: Optional[str]) -> Set[str]:
    """Tags in use that match the exclude pattern list"""
    return set(TagMatcher(exclude_patterns).filter(tags_in_use))


def trim_children(state: CleanupState, registry) -> None:
    """Remove multi-architecture children and referrer artifacts from the filter set.

    A referrer is only trimmed when its sha256-<hex> tag is in use and not
    excluded; an excluded referrer tag is left for the exclude trim.
    """
    graph = state.graph
    for digest in state.ordered(graph.known_digests):
        for child in graph.children_of(digest):
            state.filter_set.discard(child.digest)

        tag = referrer_tag(digest)
        if tag in state.tags_in_use and not state.is_excluded(tag):
            referrer_digest = registry.get_tag_digest(tag)
            state.filter_set.discard(referrer_digest)
            for child in graph.children_of(referrer_digest):
                state.filter_set.discard(child.digest)


def trim_excluded_tags(state: CleanupState, packages) -> None:
    """Remove the digests that excluded tags point to"""
    for tag in state.exclude_tags:
        digest = packages.get_digest_by_tag(tag)
        if digest:
            state.filter_set.discard(digest)


def trim_by_age(state: CleanupState, packages, older_than: timedelta, now: Optional[datetime] = None) -> None:
    """Remove digests updated at or after now - older_than.

    Digests without an update timestamp are kept as candidates.
    """
    cutoff = (now or datetime.now(timezone.utc)) - older_than
    for digest in state.candidates():
        entry = packages.get_package_by_digest(digest)
        if entry.updated_at is None:
            continue
        if entry.updated_at >= cutoff:
            state.filter_set.discard(digest)
        else:
            logger.info(entry.describe())


def reduce_candidates(state: CleanupState, registry, packages, exclude_patterns: Optional[str] = None,
                      older_than: Optional[timedelta] = None, older_than_readable: Optional[str] = None,
                      now: Optional[datetime] = None) -> None:
    """Apply the exclude, child and age trims to state.filter_set"""
    state.exclude_tags = find_excluded_tags(state.tags_in_use, exclude_patterns)
    if state.exclude_tags:
        logger.info(f"Excluded tags: {', '.join(sorted(state.exclude_tags))}")

    trim_children(state, registry)
    trim_excluded_tags(state, packages)

    if older_than:
        with log_group(logger, f"Including packages that are older than: {older_than_readable or older_than}"):
            trim_by_age(state, packages, older_than, now)
