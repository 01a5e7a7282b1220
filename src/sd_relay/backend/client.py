# src/sd_relay/backend/client.py

from __future__ import annotations

import logging
from typing import Callable

import httpx

from ..core.models import PROGRESS_API, progress_text
from ..errors import BackendUnavailableError

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


class StableDiffusionBackend:
    """
    Thin async client for the Stable Diffusion web API.

    - One shared httpx.AsyncClient for all jobs (calls are independent).
    - submit() has no timeout: generation time is unbounded and a hung backend
      hangs the job.
    - progress() is bounded by progress_timeout so a stuck poll cannot hold up
      the end of the job.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url_for: Callable[[str], str],
        *,
        progress_timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._url_for = url_for
        self._progress_timeout = progress_timeout

    async def submit(self, api: str, params: str) -> httpx.Response:
        """
        POST params (already JSON text) to the api endpoint.

        Any HTTP status is returned as-is. Only a connection-level failure
        raises, as BackendUnavailableError.
        """
        url = self._url_for(api)
        logger.debug("POST %s (%d bytes)", url, len(params))
        try:
            resp = await self._client.post(
                url,
                content=params.encode("utf-8"),
                headers=JSON_HEADERS,
                timeout=None,
            )
        except httpx.TransportError as e:
            raise BackendUnavailableError(f"POST {url} failed: {e!r}") from e

        logger.debug("POST %s -> %d", url, resp.status_code)
        return resp

    async def progress(self) -> tuple[int, str]:
        """GET the progress endpoint; returns (http_status, progress_text)."""
        url = self._url_for(PROGRESS_API)
        resp = await self._client.get(url, timeout=self._progress_timeout)
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        return resp.status_code, progress_text(payload)

