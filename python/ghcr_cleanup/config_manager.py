#!/usr/bin/env python3
"""
Configuration Manager for ghcr-cleanup

This module handles loading and managing configuration from a YAML config
file, environment variables (including GitHub Actions ``INPUT_*`` inputs) and
command line overrides, in increasing order of precedence.
"""

import logging
import os
import re
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import yaml

from ghcr_cleanup.error_utils import ConfigValidationError
from ghcr_cleanup.logging_utils import level_from_name

# Option name -> config section
_OPTION_SECTIONS = {
    "token": "github",
    "owner": "github",
    "repository": "github",
    "package": "github",
    "api_url": "github",
    "registry_url": "github",
    "delete_tags": "cleanup",
    "tags": "cleanup",
    "exclude_tags": "cleanup",
    "older_than": "cleanup",
    "delete_untagged": "cleanup",
    "delete_ghost_images": "cleanup",
    "delete_partial_images": "cleanup",
    "keep_n_tagged": "cleanup",
    "keep_n_untagged": "cleanup",
    "dry_run": "cleanup",
    "validate": "cleanup",
    "log_level": "cleanup",
    "report_file": "cleanup",
}

_DURATION_UNITS = {
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
    "w": 604800, "week": 604800, "weeks": 604800,
    "month": 2592000, "months": 2592000,
    "y": 31536000, "year": 31536000, "years": 31536000,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)\s*([a-zA-Z]+)")


def parse_duration(text: str) -> timedelta:
    """Parse a human readable duration such as '15 days' or '1 week 2 days'.

    Months count as 30 days and years as 365 days.

    Raises:
        ValueError: If the text is not a sequence of <number> <unit> pairs
    """
    remainder = _DURATION_PART.sub("", text).replace(",", "").replace("and", "").strip()
    parts = _DURATION_PART.findall(text)
    if not parts or remainder:
        raise ValueError(f"invalid duration: {text!r}")
    seconds = 0.0
    for amount, unit in parts:
        unit = unit.lower()
        if unit not in _DURATION_UNITS:
            raise ValueError(f"unknown duration unit {unit!r} in {text!r}")
        seconds += float(amount) * _DURATION_UNITS[unit]
    return timedelta(seconds=seconds)


def _to_bool(name: str, value: Any) -> bool:
    """Coerce YAML/env/CLI values to bool the way GitHub Actions boolean inputs are read"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ConfigValidationError(f"{name} must be a boolean (true/false), got: {value!r}")


class ConfigManager:
    """Manages configuration for a cleanup run"""

    def __init__(self, config_file: str = None, overrides: Optional[Dict[str, Any]] = None,
                 environ: Optional[Dict[str, str]] = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to CONFIG_FILE env var or config.yaml)
            overrides: Option values taking precedence over file and environment (e.g. from the CLI)
            environ: Environment mapping (defaults to os.environ)
            validate: If True, validate configuration on initialization
        """
        self.environ = os.environ if environ is None else environ
        if config_file is None:
            config_file = self.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()
        self._apply_environment()
        self._apply_overrides(overrides or {})

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "github": {
                "token": None,
                "owner": None,
                "repository": None,
                "package": None,
                "api_url": "https://api.github.com",
                "registry_url": "ghcr.io",
            },
            "cleanup": {
                "delete_tags": None,
                "tags": None,
                "exclude_tags": None,
                "older_than": None,
                "delete_untagged": None,
                "delete_ghost_images": False,
                "delete_partial_images": False,
                "keep_n_tagged": None,
                "keep_n_untagged": None,
                "dry_run": False,
                "validate": False,
                "log_level": "warn",
                "report_file": None,
            },
            "retry": {
                "max_retries": 3,
                "initial_delay": 1.0,
                "max_delay": 60.0,
                "exponential_base": 2.0,
                "jitter": True,
                "timeout": 60,  # Timeout for HTTP requests in seconds
            },
            "cache": {
                "tag_digest_ttl": 3600,
            },
        }

        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                return self._merge_config(default_config, user_config)
            else:
                logging.debug(f"Config file {self.config_file} not found, using defaults")
                return default_config
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Error parsing config file {self.config_file}: {e}") from e

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            key = key.replace("-", "_")
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _set_option(self, name: str, value: Any) -> None:
        self.config[_OPTION_SECTIONS[name]][name] = value

    def _apply_environment(self) -> None:
        """Apply GITHUB_TOKEN and GitHub Actions INPUT_* variables.

        The runner exports every declared input, empty ones included, so empty
        values are treated as unset.
        """
        token = self.environ.get("GITHUB_TOKEN")
        if token:
            self._set_option("token", token)

        for name in _OPTION_SECTIONS:
            for env_name in (f"INPUT_{name.upper().replace('_', '-')}", f"INPUT_{name.upper()}"):
                value = self.environ.get(env_name)
                if value is not None and value.strip() != "":
                    self._set_option(name, value.strip())
                    break

    def _apply_overrides(self, overrides: Dict[str, Any]) -> None:
        for name, value in overrides.items():
            name = name.replace("-", "_")
            if name not in _OPTION_SECTIONS:
                raise ConfigValidationError(f"Unknown option: {name}")
            if value is not None:
                self._set_option(name, value)

    # GitHub configuration
    def get_token(self) -> Optional[str]:
        return self.config["github"]["token"]

    def _github_repository(self) -> Tuple[Optional[str], Optional[str]]:
        """Owner and repository parsed from GITHUB_REPOSITORY"""
        value = self.environ.get("GITHUB_REPOSITORY")
        if not value:
            return None, None
        parts = value.split("/")
        if len(parts) != 2 or not all(parts):
            raise ConfigValidationError(f"Error parsing GITHUB_REPOSITORY: {value}")
        return parts[0], parts[1]

    def get_owner(self) -> Optional[str]:
        """Get package owner, defaulting to the owner of GITHUB_REPOSITORY"""
        return self.config["github"]["owner"] or self._github_repository()[0]

    def get_repository(self) -> Optional[str]:
        """Get repository name, defaulting to the repository of GITHUB_REPOSITORY"""
        return self.config["github"]["repository"] or self._github_repository()[1]

    def get_package(self) -> Optional[str]:
        """Get package name, defaulting to the repository name"""
        return self.config["github"]["package"] or self.get_repository()

    def get_api_url(self) -> str:
        return self.config["github"]["api_url"].rstrip("/")

    def get_registry_url(self) -> str:
        """Get registry host, with any scheme stripped"""
        url = self.config["github"]["registry_url"]
        return url.replace("https://", "").replace("http://", "").rstrip("/")

    # Cleanup configuration
    def get_delete_tags(self) -> Optional[str]:
        """Get the delete-tags pattern list; 'tags' is its short form"""
        return self.config["cleanup"]["delete_tags"] or self.config["cleanup"]["tags"] or None

    def get_exclude_tags(self) -> Optional[str]:
        return self.config["cleanup"]["exclude_tags"] or None

    def get_older_than(self) -> Optional[timedelta]:
        """Get the age cutoff, with type coercion"""
        value = self.config["cleanup"]["older_than"]
        if value is None or value == "":
            return None
        if isinstance(value, (int, float)):
            return timedelta(seconds=value)
        try:
            return parse_duration(str(value))
        except ValueError as e:
            raise ConfigValidationError(f"older_than is not a valid duration: {e}")

    def get_older_than_readable(self) -> Optional[str]:
        value = self.config["cleanup"]["older_than"]
        return str(value) if value not in (None, "") else None

    def _get_count(self, name: str) -> Optional[int]:
        value = self.config["cleanup"][name]
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise ConfigValidationError(f"{name} is not a number, got: {value!r}")
        try:
            return int(value)
        except (ValueError, TypeError):
            raise ConfigValidationError(f"{name} is not a number, got: {value!r}")

    def get_keep_n_tagged(self) -> Optional[int]:
        """Get number of tagged images to keep, with type coercion"""
        return self._get_count("keep_n_tagged")

    def get_keep_n_untagged(self) -> Optional[int]:
        """Get number of untagged images to keep, with type coercion"""
        return self._get_count("keep_n_untagged")

    def get_delete_untagged(self) -> bool:
        """Get delete-untagged; defaults to true when no other selection option is set"""
        value = self.config["cleanup"]["delete_untagged"]
        if value is None or value == "":
            return (
                self.get_delete_tags() is None
                and self.get_keep_n_tagged() is None
                and self.get_keep_n_untagged() is None
            )
        return _to_bool("delete_untagged", value)

    def get_delete_ghost_images(self) -> bool:
        return _to_bool("delete_ghost_images", self.config["cleanup"]["delete_ghost_images"])

    def get_delete_partial_images(self) -> bool:
        return _to_bool("delete_partial_images", self.config["cleanup"]["delete_partial_images"])

    def is_dry_run(self) -> bool:
        return _to_bool("dry_run", self.config["cleanup"]["dry_run"])

    def should_validate(self) -> bool:
        return _to_bool("validate", self.config["cleanup"]["validate"])

    def get_log_level(self) -> int:
        """Get logging level from the error/warn/info/debug option"""
        return level_from_name(self.config["cleanup"]["log_level"])

    def get_report_file(self) -> Optional[str]:
        return self.config["cleanup"]["report_file"] or None

    # Retry configuration
    def get_max_retries(self) -> int:
        """Get max retries from config, with type coercion"""
        retries = self.config.get("retry", {}).get("max_retries", 3)
        try:
            return int(retries)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.max_retries must be an integer, got: {retries} (type: {type(retries).__name__})"
            )

    def get_retry_initial_delay(self) -> float:
        """Get initial retry delay from config, with type coercion"""
        delay = self.config.get("retry", {}).get("initial_delay", 1.0)
        try:
            return float(delay)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.initial_delay must be a number, got: {delay} (type: {type(delay).__name__})"
            )

    def get_retry_max_delay(self) -> float:
        """Get max retry delay from config, with type coercion"""
        delay = self.config.get("retry", {}).get("max_delay", 60.0)
        try:
            return float(delay)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.max_delay must be a number, got: {delay} (type: {type(delay).__name__})"
            )

    def get_retry_exponential_base(self) -> float:
        """Get exponential base for retry backoff from config, with type coercion"""
        base = self.config.get("retry", {}).get("exponential_base", 2.0)
        try:
            return float(base)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.exponential_base must be a number, got: {base} (type: {type(base).__name__})"
            )

    def get_retry_jitter(self) -> bool:
        """Get whether to use jitter in retry delays from config"""
        return self.config.get("retry", {}).get("jitter", True)

    def get_request_timeout(self) -> int:
        """Get timeout for HTTP requests from config, with type coercion"""
        timeout = self.config.get("retry", {}).get("timeout", 60)
        try:
            return int(timeout)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.timeout must be an integer, got: {timeout} (type: {type(timeout).__name__})"
            )

    # Cache configuration
    def get_tag_digest_cache_ttl(self) -> int:
        ttl = self.config.get("cache", {}).get("tag_digest_ttl", 3600)
        try:
            return int(ttl)
        except (ValueError, TypeError):
            raise ConfigValidationError(f"cache.tag_digest_ttl must be an integer, got: {ttl}")

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        def check(getter):
            try:
                return getter()
            except ConfigValidationError as e:
                errors.append(str(e))
                return None

        if not self.get_token():
            errors.append("token is not set (use --token, GITHUB_TOKEN or github.token)")

        if not self.config["github"]["owner"] and not self.environ.get("GITHUB_REPOSITORY"):
            errors.append("owner is not set and GITHUB_REPOSITORY is not set")
        else:
            if not check(self.get_owner):
                errors.append("owner is not set")
            if not check(self.get_repository):
                errors.append("repository is not set")
            if not check(self.get_package):
                errors.append("package is not set")

        if self.config["cleanup"]["tags"] and self.config["cleanup"]["delete_tags"]:
            errors.append("tags and delete-tags cant be used at the same time, use either one")

        for name in ("keep_n_tagged", "keep_n_untagged"):
            count = check(lambda: self._get_count(name))
            if count is not None and count < 0:
                errors.append(f"{name} must be a non-negative integer, got: {count}")

        older_than = check(self.get_older_than)
        if older_than is not None and older_than.total_seconds() <= 0:
            errors.append("older_than must be a positive duration")

        for getter in (self.get_delete_untagged, self.get_delete_ghost_images,
                       self.get_delete_partial_images, self.is_dry_run, self.should_validate):
            check(getter)

        if self.config["cleanup"]["delete_partial_images"] is True and self.config["cleanup"]["delete_ghost_images"] is True:
            warnings.append("delete_partial_images and delete_ghost_images are both set; partial images take priority")

        if self.config["cleanup"]["keep_n_untagged"] not in (None, "") and self.config["cleanup"]["delete_untagged"] not in (None, ""):
            warnings.append("keep_n_untagged and delete_untagged are both set; keep_n_untagged takes priority")

        log_level = self.config["cleanup"]["log_level"]
        if log_level and str(log_level).lower() not in ("error", "warn", "warning", "info", "debug"):
            warnings.append(f"log_level '{log_level}' is not one of error/warn/info/debug, using warn")

        max_retries = check(self.get_max_retries)
        if max_retries is not None and max_retries < 0:
            errors.append(f"retry.max_retries must be a non-negative integer, got: {max_retries}")

        initial_delay = check(self.get_retry_initial_delay)
        max_delay = check(self.get_retry_max_delay)
        if initial_delay is not None and max_delay is not None and max_delay < initial_delay:
            errors.append(f"retry.max_delay ({max_delay}) must be >= retry.initial_delay ({initial_delay})")

        exponential_base = check(self.get_retry_exponential_base)
        if exponential_base is not None and exponential_base < 1.0:
            errors.append(f"retry.exponential_base must be >= 1.0, got: {exponential_base}")

        timeout = check(self.get_request_timeout)
        if timeout is not None and timeout < 1:
            errors.append(f"retry.timeout must be a positive integer (seconds), got: {timeout}")

        check(self.get_tag_digest_cache_ttl)

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def log_config(self, logger: logging.Logger) -> None:
        """Log the effective configuration (token redacted)"""
        logger.info("Current Configuration:")
        logger.info(f"  Package: {self.get_owner()}/{self.get_package()} (repository {self.get_repository()})")
        logger.info(f"  Registry: {self.get_registry_url()}")
        logger.info(f"  Delete Tags: {self.get_delete_tags() or 'Not set'}")
        logger.info(f"  Exclude Tags: {self.get_exclude_tags() or 'Not set'}")
        logger.info(f"  Older Than: {self.get_older_than_readable() or 'Not set'}")
        logger.info(f"  Keep N Tagged: {self.get_keep_n_tagged()}")
        logger.info(f"  Keep N Untagged: {self.get_keep_n_untagged()}")
        logger.info(f"  Delete Untagged: {self.get_delete_untagged()}")
        logger.info(f"  Delete Ghost Images: {self.get_delete_ghost_images()}")
        logger.info(f"  Delete Partial Images: {self.get_delete_partial_images()}")
        logger.info(f"  Dry Run: {self.is_dry_run()}")
        logger.info(f"  Validate: {self.should_validate()}")
        token = self.get_token()
        logger.info(f"  Token: {'*' * 8 if token else 'Not set'}")
