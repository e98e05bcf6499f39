"""HTTP client for the kubelet, with linear-backoff retries."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import requests

from kubemetrics.connector import ConnParams


def _linear_backoff(attempt: int) -> float:
    return float(attempt)


class KubeletClient:
    """Sends GET requests to the kubelet endpoint found by a connector."""

    def __init__(
        self,
        connector: Any,
        *,
        logger: Optional[logging.Logger] = None,
        max_retries: int = 0,
        backoff: Callable[[int], float] = _linear_backoff,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.max_retries = max_retries
        self.backoff = backoff

        if connector is None:
            raise ValueError("connector should not be nil")

        try:
            conn: ConnParams = connector.connect()
        except ConnectionError as exc:
            raise ConnectionError(
                f"connecting to kubelet using the connector: {exc}"
            ) from exc

        self._retrying = isinstance(conn.session, requests.Session)
        if not self._retrying:
            self.logger.debug("running kubelet client without retries")
        self.conn = conn

    @property
    def endpoint(self) -> str:
        """The base URL of the kubelet."""
        return self.conn.url

    def get(self, url_path: str) -> Any:
        """Send a GET request for ``url_path`` below the kubelet endpoint."""
        url = self.conn.url_for(url_path)
        self.logger.debug("Calling Kubelet endpoint: %s", url)
        if not self._retrying:
            return self.conn.session.get(url, timeout=self.conn.timeout)
        return self._get_with_retries(url)

    def _get_with_retries(self, url: str) -> Any:
        attempts = max(1, self.max_retries)
        last_response = None
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                response = self.conn.session.get(url, timeout=self.conn.timeout)
            except requests.RequestException as exc:
                self.logger.debug("getting data from kubelet: attempt %d: %s", attempt, exc)
                last_error, last_response = exc, None
            else:
                if response.status_code < 500:
                    return response
                self.logger.debug(
                    "getting data from kubelet: attempt %d: status %d",
                    attempt,
                    response.status_code,
                )
                last_error, last_response = None, response
            if attempt < attempts:
                if last_response is not None:
                    last_response.close()
                time.sleep(self.backoff(attempt))

        if last_response is not None:
            return last_response
        assert last_error is not None
        raise last_error