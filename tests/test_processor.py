# tests/test_processor.py

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from sd_relay.core.crypto import encrypt
from sd_relay.core.models import PROGRESS_API
from sd_relay.errors import BackendUnavailableError, ChannelWriteError
from sd_relay.tasks.processor import TaskProcessor

from .fakes import RecordingSender


@pytest.mark.asyncio
async def test_fast_job_sends_only_final_envelope(app_key, scripted_sd, make_backend) -> None:
    scripted_sd.post_delay = 0.05
    scripted_sd.post_body = '{"images":[]}'
    sender = RecordingSender()
    processor = TaskProcessor(make_backend(), sender, progress_interval_seconds=1.0)
    enc = encrypt("abc123", app_key)

    env = await processor.process(api="sdapi/v1/txt2img", params='{"x":1}', task_id=enc)

    assert len(sender.sent) == 1
    assert sender.sent[0] == env
    assert (env.api, env.task_id, env.status, env.body) == ("sdapi/v1/txt2img", enc, 200, '{"images":[]}')

    post = scripted_sd.requests[0]
    assert post.method == "POST"
    assert str(post.url) == "http://sd.test:7860/sdapi/v1/txt2img"
    assert post.headers["Content-Type"] == "application/json"
    assert post.content == b'{"x":1}'


@pytest.mark.asyncio
async def test_leading_slash_in_api_is_stripped(scripted_sd, make_backend) -> None:
    processor = TaskProcessor(make_backend(), RecordingSender())

    await processor.process(api="/sdapi/v1/img2img", params="{}", task_id="enc")

    assert scripted_sd.requests[0].url.path == "/sdapi/v1/img2img"


@pytest.mark.asyncio
async def test_unreachable_backend_sends_509_and_raises(scripted_sd, make_backend) -> None:
    scripted_sd.post_error = httpx.ConnectError("[Errno 111] Connection refused")
    sender = RecordingSender()
    processor = TaskProcessor(make_backend(), sender)

    with pytest.raises(BackendUnavailableError):
        await processor.process(api="sdapi/v1/txt2img", params="{}", task_id="enc")

    assert len(sender.sent) == 1
    assert sender.sent[0].status == 509
    assert sender.sent[0].body == "stable diffusion server error"
    assert sender.sent[0].api == "sdapi/v1/txt2img"


@pytest.mark.asyncio
async def test_http_error_status_is_forwarded_not_raised(scripted_sd, make_backend) -> None:
    scripted_sd.post_status = 422
    scripted_sd.post_body = json.dumps({"detail": "bad sampler"})
    sender = RecordingSender()
    processor = TaskProcessor(make_backend(), sender)

    env = await processor.process(api="sdapi/v1/txt2img", params="{}", task_id="enc")

    assert env.status == 422
    assert json.loads(env.body) == {"detail": "bad sampler"}
    assert sender.sent == [env]


@pytest.mark.asyncio
async def test_long_job_reports_progress_before_final(scripted_sd, make_backend) -> None:
    # Scaled-down version of a 3.2s call with 1s ticks: 0.7s call, 0.2s ticks.
    scripted_sd.post_delay = 0.7
    scripted_sd.progress_value = 0.42
    sender = RecordingSender()
    processor = TaskProcessor(make_backend(), sender, progress_interval_seconds=0.2)

    final = await processor.process(api="sdapi/v1/txt2img", params="{}", task_id="enc")

    progress = [e for e in sender.sent if e.api == PROGRESS_API]
    assert len(progress) == 3
    assert all(e.body == "0.42" and e.task_id == "enc" and e.status == 200 for e in progress)
    assert sender.sent[-1] == final
    assert len(sender.sent) == 4


@pytest.mark.asyncio
async def test_progress_stops_after_call_returns(scripted_sd, make_backend) -> None:
    scripted_sd.post_delay = 0.25
    sender = RecordingSender()
    processor = TaskProcessor(make_backend(), sender, progress_interval_seconds=0.1)

    await processor.process(api="sdapi/v1/txt2img", params="{}", task_id="enc")
    count = len(sender.sent)
    await asyncio.sleep(0.3)

    assert len(sender.sent) == count


@pytest.mark.asyncio
async def test_final_write_failure_propagates(scripted_sd, make_backend) -> None:
    processor = TaskProcessor(make_backend(), RecordingSender(fail=True))

    with pytest.raises(ChannelWriteError):
        await processor.process(api="sdapi/v1/txt2img", params="{}", task_id="enc")
