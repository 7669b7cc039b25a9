import logging
import os
import traceback
from contextlib import contextmanager
from typing import Iterator, Optional

LOG_LEVELS = {
	"error": logging.ERROR,
	"warn": logging.WARNING,
	"warning": logging.WARNING,
	"info": logging.INFO,
	"debug": logging.DEBUG,
}


def setup_logging(level: int = logging.INFO, fmt: Optional[str] = None) -> None:
	"""Configure root logging once. Subsequent calls only adjust the level.
	If fmt is not provided, a sensible default is used.
	"""
	root = logging.getLogger()
	if root.handlers:
		root.setLevel(level)
		return
	format_str = fmt or '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
	logging.basicConfig(level=level, format=format_str)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	"""Return a module/logger by name, after ensuring logging is configured."""
	setup_logging()
	return logging.getLogger(name) if name else logging.getLogger(__name__)


def level_from_name(name: Optional[str], default: int = logging.WARNING) -> int:
	"""Map an error/warn/info/debug option value to a logging level."""
	if not name:
		return default
	return LOG_LEVELS.get(name.strip().lower(), default)


def running_in_github_actions() -> bool:
	return os.environ.get("GITHUB_ACTIONS", "").lower() == "true"


@contextmanager
def log_group(logger: logging.Logger, title: str, level: int = logging.INFO) -> Iterator[None]:
	"""Group the log lines emitted inside the block.

	Under GitHub Actions the workflow-command markers are printed so the lines
	collapse into a group in the job log; elsewhere the title is logged as a
	header.
	"""
	if running_in_github_actions():
		print(f"::group::{title}", flush=True)
		try:
			yield
		finally:
			print("::endgroup::", flush=True)
	else:
		logger.log(level, f"== {title}")
		yield


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
	"""Centralized exception logging with full traceback.

	Args:
		logger: Logger instance to use
		message: Custom error message to log before the traceback
		exc_info: Exception instance (if None, uses current exception context)
	"""
	logger.error(message)
	if exc_info is not None:
		logger.error(f"Exception type: {type(exc_info).__name__}")
		logger.error(f"Exception message: {str(exc_info)}")
	logger.debug("Full traceback:")
	logger.debug(traceback.format_exc())
