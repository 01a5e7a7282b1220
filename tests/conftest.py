# tests/conftest.py

from __future__ import annotations

import asyncio
import base64
import json
from typing import Callable

import httpx
import pytest

from sd_relay.backend.client import StableDiffusionBackend

SD_BASE = "http://sd.test:7860"


def sd_url(api: str) -> str:
    return f"{SD_BASE}/{api.lstrip('/')}"


@pytest.fixture()
def app_key() -> str:
    """Deterministic 32-byte AES key, base64 encoded like SDRELAY_APP_KEY."""
    return base64.b64encode(bytes(range(32))).decode("ascii")


class ScriptedSD:
    """
    Programmable Stable Diffusion server behind httpx.MockTransport.

    - POST on any path: waits post_delay, then answers post_status/post_body
      (or raises post_error, e.g. httpx.ConnectError for "connection refused")
    - GET /sdapi/v1/progress: {"progress": progress_value}
    """

    def __init__(self) -> None:
        self.post_delay = 0.0
        self.post_status = 200
        self.post_body = "{}"
        self.post_error: Exception | None = None
        self.progress_value: object = 0.5
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.method == "GET" and request.url.path == "/sdapi/v1/progress":
            return httpx.Response(200, content=json.dumps({"progress": self.progress_value}))

        if request.method == "POST":
            if self.post_delay:
                await asyncio.sleep(self.post_delay)
            if self.post_error is not None:
                raise self.post_error
            return httpx.Response(self.post_status, content=self.post_body.encode("utf-8"))

        return httpx.Response(404, content=b"not found")


@pytest.fixture()
def scripted_sd() -> ScriptedSD:
    return ScriptedSD()


@pytest.fixture()
def make_backend(scripted_sd: ScriptedSD) -> Callable[[], StableDiffusionBackend]:
    """
    Factory (not an async fixture) so the AsyncClient is created inside the test's loop.
    """

    def _make() -> StableDiffusionBackend:
        client = httpx.AsyncClient(transport=httpx.MockTransport(scripted_sd))
        return StableDiffusionBackend(client, sd_url)

    return _make

