# src/sd_relay/connectors/nsq_consumer.py

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import nsq

from ..core import crypto
from ..core.models import Job
from ..core.ports import JobProcessor
from ..errors import BackendUnavailableError, CryptoError, JobDecodeError

logger = logging.getLogger(__name__)


def decode_job(body: bytes) -> Job:
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        raise JobDecodeError(f"queue message is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise JobDecodeError(f"queue message is not a JSON object: {type(data).__name__}")
    return Job.from_message(data)


class QueueConsumer:
    """
    Turns one queue message into one processed job.

    Delivery policy is at most once, best effort: every outcome (bad JSON,
    bad key, unreachable backend, socket write failure) is logged and the
    message is still reported as handled. Nothing is requeued.
    """

    def __init__(self, processor: JobProcessor, *, app_key: str) -> None:
        self._processor = processor
        self._app_key = app_key

    async def handle(self, body: bytes) -> bool:
        try:
            job = decode_job(body)
        except JobDecodeError:
            logger.exception("Dropping undecodable message (%d bytes)", len(body))
            return True

        try:
            encrypted_id = crypto.encrypt(job.task_id, self._app_key)
        except CryptoError:
            logger.exception("Task id encryption failed; dropping job api=%s", job.api)
            return True

        logger.info("Job received api=%s task=%s", job.api, encrypted_id)
        try:
            await self._processor.process(api=job.api, params=job.params, task_id=encrypted_id)
        except BackendUnavailableError as e:
            logger.error("Job failed task=%s: %s", encrypted_id, e)
        except Exception:
            logger.exception("Job failed task=%s", encrypted_id)

        return True


def make_message_handler(consumer: QueueConsumer):
    """
    pynsq handler running each message as an asyncio task.

    The message is finished when the job completes, so nsqd keeps it in
    flight (up to msg_timeout) for the whole generation.
    """
    pending: set[asyncio.Task] = set()

    def handler(message: Any) -> None:
        message.enable_async()
        task = asyncio.ensure_future(consumer.handle(message.body))
        pending.add(task)

        def _done(t: asyncio.Task) -> None:
            pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error("Message handler crashed: %r", t.exception())
            # Always ack, whatever happened.
            if not message.has_responded():
                message.finish()

        task.add_done_callback(_done)

    return handler


def create_nsq_reader(settings, consumer: QueueConsumer) -> nsq.Reader:
    logger.info(
        "NSQ reader: topic=%s channel=%s lookupd=%s max_in_flight=%d",
        settings.nsq_topic,
        settings.nsq_channel,
        settings.lookupd_http_address,
        settings.nsq_max_in_flight,
    )
    return nsq.Reader(
        topic=settings.nsq_topic,
        channel=settings.nsq_channel,
        message_handler=make_message_handler(consumer),
        lookupd_http_addresses=[settings.lookupd_http_address],
        max_in_flight=settings.nsq_max_in_flight,
        msg_timeout=settings.nsq_msg_timeout_seconds,
    )
