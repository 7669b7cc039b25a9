"""Post-run consistency check of multi-architecture images and referrer tags"""

from typing import Iterable, List, Set

from ghcr_cleanup.graph import DependencyGraph
from ghcr_cleanup.logging_utils import get_logger
from ghcr_cleanup.models import is_referrer_tag, referrer_parent_digest

logger = get_logger(__name__)


def validate_images(graph: DependencyGraph, packages, tags_in_use: Iterable[str]) -> List[str]:
    """Report missing children and orphaned referrer tags.

    Only warns; nothing is deleted and nothing is raised for missing data.

    Returns:
        The warning messages, in the order they were logged
    """
    logger.info("Validating multi-architecture/referrers images:")
    warnings: List[str] = []
    processed: Set[str] = set()

    for digest in packages.ordered_digests():
        if digest in processed:
            continue
        tags = packages.get_package_by_digest(digest).tags
        for child in graph.children_of(digest):
            if child.digest in processed:
                continue
            processed.add(child.digest)
            if packages.get_id_by_digest(child.digest) is None:
                if tags:
                    warnings.append(f"digest {child.digest} not found on image {','.join(tags)}")
                else:
                    warnings.append(f"digest {child.digest} not found on untagged image {digest}")
                logger.warning(warnings[-1])

    for tag in sorted(tags_in_use):
        if is_referrer_tag(tag) and packages.get_id_by_digest(referrer_parent_digest(tag)) is None:
            warnings.append(f"parent image for referrer tag {tag} not found in repository")
            logger.warning(warnings[-1])

    if not warnings:
        logger.info(" no errors found")
    return warnings
