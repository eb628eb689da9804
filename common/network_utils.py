# common/network_utils.py
# -*- coding: utf-8 -*-
"""
Network-related utility functions.
"""
import logging
from typing import Optional

import requests

module_logger = logging.getLogger(__name__)


class ProbeTransportError(Exception):
    """The health endpoint could not be reached or did not answer in time."""


def http_status(
    url: str,
    timeout: float,
    session: Optional[requests.Session] = None,
    current_logger: Optional[logging.Logger] = None,
) -> int:
    """
    Issues a GET against `url` and returns the response status code.

    Redirects are not followed so that a health endpoint answering 301/302 is
    reported as such.

    Raises:
        ProbeTransportError: connection refused, DNS failure, timeout or any
            other transport-level problem.
    """
    logger_to_use = current_logger if current_logger else module_logger
    http = session or requests
    try:
        response = http.get(url, timeout=timeout, allow_redirects=False)
    except requests.exceptions.Timeout as e:
        raise ProbeTransportError(
            f"timed out after {timeout}s requesting {url}"
        ) from e
    except requests.exceptions.RequestException as e:
        raise ProbeTransportError(f"request to {url} failed: {e}") from e
    logger_to_use.debug(f"GET {url} -> {response.status_code}")
    return response.status_code
