"""Command line entry point for ghcr-cleanup"""

import argparse
import logging
import sys
from typing import List, Optional

from ghcr_cleanup.cleaner import RegistryCleaner
from ghcr_cleanup.config_manager import ConfigManager
from ghcr_cleanup.error_utils import ActionableError, ConfigValidationError
from ghcr_cleanup.http_client import HTTP_LOGGER
from ghcr_cleanup.logging_utils import get_logger, log_exception, setup_logging

logger = get_logger(__name__)

# Options forwarded to ConfigManager as overrides
OPTION_NAMES = (
    "token", "owner", "repository", "package", "delete_tags", "tags", "exclude_tags",
    "older_than", "keep_n_tagged", "keep_n_untagged", "delete_untagged",
    "delete_ghost_images", "delete_partial_images", "validate", "dry_run",
    "log_level", "report_file",
)


def _add_flag(parser: argparse.ArgumentParser, name: str, help_text: str) -> None:
    """Boolean option: --name alone means true, --name false is accepted too"""
    parser.add_argument(name, nargs="?", const="true", default=None, metavar="BOOL", help=help_text)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Delete container images from a GitHub Container Registry package"
    )
    parser.add_argument("--config", help="Path to config YAML file (default: CONFIG_FILE env var or config.yaml)")
    parser.add_argument("--token", help="GitHub token (default: GITHUB_TOKEN env var)")
    parser.add_argument("--owner", help="Package owner (default: owner part of GITHUB_REPOSITORY)")
    parser.add_argument("--repository", help="Repository name (default: repository part of GITHUB_REPOSITORY)")
    parser.add_argument("--package", help="Package name (default: the repository name)")
    parser.add_argument("--delete-tags", help="Comma separated tags to delete, wildcards * and ? supported")
    parser.add_argument("--tags", help="Alias of --delete-tags")
    parser.add_argument("--exclude-tags", help="Comma separated tags never to delete, wildcards supported")
    parser.add_argument("--older-than", help="Only consider images older than this duration (e.g. '15 days')")
    parser.add_argument("--keep-n-tagged", type=int, help="Number of newest tagged images to keep")
    parser.add_argument("--keep-n-untagged", type=int, help="Number of newest untagged images to keep")
    _add_flag(parser, "--delete-untagged", "Delete all untagged images")
    _add_flag(parser, "--delete-ghost-images", "Delete multi-architecture images whose children are all missing")
    _add_flag(parser, "--delete-partial-images", "Delete multi-architecture images with any missing child")
    _add_flag(parser, "--validate", "Validate the repository after the cleanup")
    _add_flag(parser, "--dry-run", "Log what would be deleted without deleting anything")
    parser.add_argument("--log-level", choices=["error", "warn", "info", "debug"],
                        help="Log level of registry and API requests (default: warn)")
    parser.add_argument("--report-file", help="Write a JSON report of the run to this path")
    return parser.parse_args(argv)


def configure_request_logging(level: int) -> None:
    """Request level loggers follow the log_level option; cleanup progress stays at INFO"""
    for name in (HTTP_LOGGER, "ghcr_cleanup.retry_utils", "urllib3"):
        logging.getLogger(name).setLevel(level)


def main(argv: Optional[List[str]] = None) -> None:
    """Main function"""
    setup_logging(logging.INFO)
    args = parse_arguments(argv)
    overrides = {name: getattr(args, name) for name in OPTION_NAMES}

    try:
        config_manager = ConfigManager(config_file=args.config, overrides=overrides)
        configure_request_logging(config_manager.get_log_level())
        config_manager.log_config(logger)

        if config_manager.is_dry_run():
            logger.info("Running in DRY RUN mode - no images will be deleted")

        cleaner = RegistryCleaner(config_manager)
        cleaner.init()
        cleaner.run()
    except ConfigValidationError as e:
        logger.error(str(e))
        sys.exit(1)
    except ActionableError as e:
        log_exception(logger, e.format_message(), exc_info=e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.error("Cleanup interrupted by user")
        sys.exit(1)
    except Exception as e:
        log_exception(logger, f"Cleanup failed: {e}", exc_info=e)
        sys.exit(1)


if __name__ == "__main__":
    main()
