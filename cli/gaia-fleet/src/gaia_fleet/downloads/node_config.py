# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: MIT
#
# Permission is hereby granted, free of charge, to any person obtaining a
# copy of this software and associated documentation files (the "Software"),
# to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense,
# and/or sell copies of the Software, and to permit persons to whom the
# Software is furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING
# FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER
# DEALINGS IN THE SOFTWARE.

"""Remote node configuration download and validation.

Node configurations are JSON documents served over HTTP (raw GitHub URLs by
default). Structural validity is the only check performed: the payload must
decode as a JSON object before it is allowed anywhere near the node binary.
"""

import json
import random
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

import requests

from gaia_fleet.constants import DEFAULT_FETCH_BACKOFF_SECONDS, DEFAULT_FETCH_RETRIES
from gaia_fleet.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_MAX_BACKOFF_SECONDS = 60


def _is_transient_error(exc: BaseException) -> bool:
    """Check if an exception indicates a failure worth retrying.

    Connection errors, timeouts, 429 rate limits and 5xx responses are
    transient. Everything else (404, malformed URL, ...) is not.
    """
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    resp = getattr(exc, "response", None)
    status = getattr(resp, "status_code", None) if resp is not None else None
    return status is not None and (status == 429 or status >= 500)


def _format_exception_chain(exc: BaseException, max_depth: int = 5) -> str:
    """Render exc and its causes as ``Type [HTTP status]: message`` joined by arrows."""
    parts: List[str] = []
    cur: Optional[BaseException] = exc
    while cur is not None and len(parts) < max_depth:
        status = getattr(getattr(cur, "response", None), "status_code", None)
        label = cur.__class__.__name__ + (f" [HTTP {status}]" if status else "")
        msg = str(cur).strip()
        parts.append(f"{label}: {msg}" if msg else label)
        cur = cur.__cause__ or cur.__context__
    return " → ".join(parts)


def _with_retry(
    fn: Callable[[], T],
    operation: str,
    max_retries: int = DEFAULT_FETCH_RETRIES,
    initial_backoff: float = DEFAULT_FETCH_BACKOFF_SECONDS,
    max_backoff: float = _MAX_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Execute an HTTP operation, retrying transient failures with backoff."""
    for attempt in range(max_retries):
        try:
            return fn()
        except Exception as e:
            if not _is_transient_error(e) or attempt == max_retries - 1:
                raise
            wait_time = min(initial_backoff * (2**attempt), max_backoff)
            wait_time = round(wait_time * (0.8 + random.random() * 0.4), 1)  # Add jitter (80-120%)
            logger.warning(
                f"{operation} failed transiently (attempt {attempt + 1}/{max_retries}). Retrying in {wait_time}s..."
            )
            sleep(wait_time)

    raise RuntimeError(f"{operation} was not attempted (max_retries={max_retries})")


class ConfigFetcher:
    """Downloads node configuration documents."""

    def __init__(
        self,
        retries: int = DEFAULT_FETCH_RETRIES,
        backoff: float = DEFAULT_FETCH_BACKOFF_SECONDS,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.retries = max(1, retries)
        self.backoff = backoff
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sleep = sleep

    def _get(self, url: str) -> bytes:
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.content

    def fetch(self, url: str) -> bytes:
        """Fetch the raw configuration bytes.

        Raises:
            RuntimeError: If the download fails (after retries for transient errors)
        """
        logger.debug(f"Fetching node configuration from {url}")
        try:
            return _with_retry(
                lambda: self._get(url),
                operation=f"Download of {url}",
                max_retries=self.retries,
                initial_backoff=self.backoff,
                sleep=self.sleep,
            )
        except requests.RequestException as exc:
            chain = _format_exception_chain(exc)
            raise RuntimeError(f"Failed to download configuration from {url}. Error chain: {chain}") from exc


def parse_node_config(data: bytes) -> Dict[str, Any]:
    """Decode configuration bytes as a JSON object.

    Raises:
        ValueError: If the payload is not UTF-8 JSON or not a key/value object
    """
    try:
        parsed = json.loads(data.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"configuration is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError(f"configuration must be a JSON object, got {type(parsed).__name__}")
    return parsed
