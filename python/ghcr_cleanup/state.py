"""Working state of one cleanup reload cycle"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from ghcr_cleanup.graph import DependencyGraph


@dataclass
class CleanupStats:
    """Counters that survive reloads for the whole run"""

    images_deleted: int = 0
    multi_arch_images_deleted: int = 0
    deleted_digests: List[str] = field(default_factory=list)


@dataclass
class CleanupState:
    """Collections owned by one reload; rebuilt from scratch on the next one.

    filter_set only shrinks and delete_set only grows during a reload, and
    the two never share a digest.
    """

    graph: DependencyGraph
    filter_set: Set[str] = field(default_factory=set)
    delete_set: Set[str] = field(default_factory=set)
    deleted: Set[str] = field(default_factory=set)
    exclude_tags: Set[str] = field(default_factory=set)
    tags_in_use: Set[str] = field(default_factory=set)

    # listing order of the digests, used to iterate sets deterministically
    order: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def create(cls, graph: DependencyGraph, ordered_digests: Iterable[str], tags_in_use: Iterable[str]) -> "CleanupState":
        ordered = list(ordered_digests)
        return cls(
            graph=graph,
            filter_set=set(ordered),
            tags_in_use=set(tags_in_use),
            order={digest: position for position, digest in enumerate(ordered)},
        )

    def ordered(self, digests: Iterable[str]) -> List[str]:
        """Sort digests into listing order; unknown digests go last"""
        end = len(self.order)
        return sorted(digests, key=lambda digest: self.order.get(digest, end))

    def candidates(self) -> List[str]:
        """Snapshot of filter_set in listing order, safe to iterate while moving digests"""
        return self.ordered(self.filter_set)

    def move_to_delete(self, digest: str) -> None:
        self.filter_set.discard(digest)
        self.delete_set.add(digest)

    def is_excluded(self, tag: str) -> bool:
        return tag in self.exclude_tags
