"""
Cleanup orchestration.

RegistryCleaner wires the phases together: reload (load packages, build the
dependency graph, reduce the candidate set), the policy classifiers in their
fixed order, the cascading deletion, the optional validation and the run
statistics.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ghcr_cleanup.classifiers import (
    find_tag_deletions,
    select_ghost_images,
    select_keep_n_tagged,
    select_keep_n_untagged,
    select_partial_images,
    select_tags,
    select_untagged,
    untag_all,
)
from ghcr_cleanup.deletion import CascadingDeleter
from ghcr_cleanup.graph import build_dependency_graph
from ghcr_cleanup.logging_utils import get_logger, log_group
from ghcr_cleanup.package_client import GithubPackageClient
from ghcr_cleanup.reducer import reduce_candidates
from ghcr_cleanup.registry_client import RegistryClient
from ghcr_cleanup.report_utils import build_run_report, format_statistics, save_json
from ghcr_cleanup.state import CleanupState, CleanupStats
from ghcr_cleanup.validator import validate_images

logger = get_logger(__name__)


class RegistryCleaner:
    """Runs one cleanup of a single container package"""

    def __init__(self, config_manager, registry=None, packages=None, now: Optional[datetime] = None):
        """Initialize RegistryCleaner.

        Args:
            config_manager: Validated ConfigManager
            registry: Registry client (default: RegistryClient from config)
            packages: Package client (default: GithubPackageClient from config)
            now: Reference time for the age cutoff (default: current time)
        """
        self.config = config_manager
        self.registry = registry or RegistryClient(config_manager)
        self.packages = packages or GithubPackageClient(config_manager)
        self.now = now

        self.stats = CleanupStats()
        self.state: Optional[CleanupState] = None
        self.validation_warnings: List[str] = []

    def init(self) -> None:
        """Authenticate against the registry and resolve the package owner"""
        self.registry.login()
        self.packages.init()

    def reload(self) -> None:
        """Rebuild the per-reload state from a fresh package listing"""
        self.packages.load_packages(True)

        graph = build_dependency_graph(
            self.registry, self.packages, dump_manifests=self.config.get_log_level() <= logging.DEBUG
        )
        self.state = CleanupState.create(graph, self.packages.ordered_digests(), self.packages.get_tags())
        reduce_candidates(
            self.state,
            self.registry,
            self.packages,
            exclude_patterns=self.config.get_exclude_tags(),
            older_than=self.config.get_older_than(),
            older_than_readable=self.config.get_older_than_readable(),
            now=self.now,
        )

    def delete_by_tag(self) -> None:
        """Select the images of matching tags; untag tags that share a digest"""
        delete_tags = self.config.get_delete_tags()
        standard, untagging = find_tag_deletions(self.state, self.registry, self.packages, delete_tags)

        if not standard and not untagging:
            with log_group(logger, f"Finding tagged images to delete: {delete_tags}"):
                logger.info("no matching tags found")
            return

        if untagging:
            with log_group(logger, f"Untagged images: {delete_tags}"):
                standard.extend(untag_all(untagging, self.registry, self.packages, self.stats))

            # tag -> digest and digest -> id mappings are stale after a repoint
            logger.info("Reloading due to untagging")
            self.reload()

        if standard:
            with log_group(logger, f"Find tagged images to delete: {delete_tags}"):
                select_tags(self.state, self.registry, standard)

    def classify(self) -> None:
        """Run the configured policies in their fixed order"""
        if self.config.get_delete_tags():
            self.delete_by_tag()

        if self.config.get_delete_partial_images():
            select_partial_images(self.state, self.packages)
        elif self.config.get_delete_ghost_images():
            select_ghost_images(self.state, self.packages)

        keep_n_tagged = self.config.get_keep_n_tagged()
        if keep_n_tagged is not None:
            select_keep_n_tagged(self.state, self.packages, keep_n_tagged)

        keep_n_untagged = self.config.get_keep_n_untagged()
        if keep_n_untagged is not None:
            select_keep_n_untagged(self.state, self.packages, keep_n_untagged)
        elif self.config.get_delete_untagged():
            select_untagged(self.state, self.packages)

    def run(self) -> CleanupStats:
        """Classify and delete, then optionally validate; returns the run counters.

        init() must have been called. Any remote failure propagates; images
        already deleted stay deleted.
        """
        self.reload()
        self.classify()

        CascadingDeleter(self.state, self.registry, self.packages, self.stats).do_delete()

        if self.config.should_validate():
            self.reload()
            self.validation_warnings = validate_images(
                self.state.graph, self.packages, self.state.tags_in_use
            )

        with log_group(logger, "Cleanup statistics"):
            for line in format_statistics(
                self.stats.images_deleted, self.stats.multi_arch_images_deleted
            ).splitlines():
                logger.info(line)

        report_file = self.config.get_report_file()
        if report_file:
            save_json(report_file, self.build_report())
        return self.stats

    def build_report(self) -> Dict[str, Any]:
        return build_run_report(
            package=self.config.get_package(),
            images_deleted=self.stats.images_deleted,
            multi_arch_images_deleted=self.stats.multi_arch_images_deleted,
            deleted_digests=self.stats.deleted_digests,
            warnings=self.validation_warnings,
            dry_run=self.config.is_dry_run(),
        )
