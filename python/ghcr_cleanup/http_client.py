"""
Shared HTTP plumbing for the registry and GitHub API clients.

Requests go through one ``requests.Session`` per client and are retried with
exponential backoff on connection errors, timeouts and 5xx responses.
"""

import logging
from typing import Any, Optional

import requests

from ghcr_cleanup.retry_utils import retry_with_backoff

# Request level logging (requests, retries, throttling); its level follows the log_level option
HTTP_LOGGER = "ghcr_cleanup.http"


class HttpClient:
    """Base class holding the session and the retry/timeout configuration"""

    def __init__(self, config_manager, session: Optional[requests.Session] = None):
        self.config_manager = config_manager
        self.session = session or requests.Session()
        self.timeout = config_manager.get_request_timeout()
        self.dry_run = config_manager.is_dry_run()
        self.logger = logging.getLogger(HTTP_LOGGER)

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send a request, retrying transient failures.

        5xx responses are raised so they can be retried; every other status
        is returned to the caller to interpret.
        """

        @retry_with_backoff(
            max_retries=self.config_manager.get_max_retries(),
            initial_delay=self.config_manager.get_retry_initial_delay(),
            max_delay=self.config_manager.get_retry_max_delay(),
            exponential_base=self.config_manager.get_retry_exponential_base(),
            jitter=self.config_manager.get_retry_jitter(),
        )
        def _execute() -> requests.Response:
            self.logger.debug(f"{method} {url}")
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        return _execute()
