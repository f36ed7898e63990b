"""HTTP reachability probes."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class NetworkProbe:
    """Answers "can we reach this URL at all?" with any HTTP status counting as yes."""

    def __init__(self, client: httpx.Client | None = None) -> None:
        self._client = client or httpx.Client(follow_redirects=False)

    def reachable(self, url: str, *, method: str = "HEAD", timeout: float = 10.0) -> bool:
        try:
            response = self._client.request(method, url, timeout=timeout)
        except httpx.HTTPError as exc:
            logger.debug("%s %s unreachable: %s", method, url, exc)
            return False
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return True

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> NetworkProbe:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
