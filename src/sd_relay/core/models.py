# src/sd_relay/core/models.py

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

PROGRESS_API = "sdapi/v1/progress"

BACKEND_DOWN_STATUS = 509
BACKEND_DOWN_BODY = "stable diffusion server error"


@dataclass(slots=True, frozen=True)
class Job:
    """One unit of work decoded from a queue message."""

    task_id: str
    api: str
    params: str

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> Job:
        """
        Build a Job from a decoded queue message.

        Missing fields become "" (the producer is trusted; the backend rejects
        nonsense). A non-string params value is re-serialized as compact JSON
        so it can still be forwarded as a request body.
        """
        params_any = data.get("params", "")
        if isinstance(params_any, str):
            params = params_any
        elif params_any is None:
            params = ""
        else:
            params = json.dumps(params_any, ensure_ascii=False, separators=(",", ":"))

        return cls(
            task_id=_as_text(data.get("task_id")),
            api=_as_text(data.get("api")),
            params=params,
        )


@dataclass(slots=True, frozen=True)
class ResultEnvelope:
    """
    What is sent to the main server for one progress tick or one finished call.

    task_id is always the encrypted id; the plain id never leaves the process.
    """

    api: str
    task_id: str
    status: int
    body: str

    def to_json(self) -> str:
        # Field order is part of the wire contract: api, task_id, status, body.
        return json.dumps(
            {
                "api": self.api,
                "task_id": self.task_id,
                "status": self.status,
                "body": self.body,
            },
            ensure_ascii=False,
            separators=(",", ":"),
        )

    def to_frame(self, *, as_json_string: bool = True) -> str:
        """
        Text frame payload.

        The main server historically receives the envelope JSON wrapped in a
        JSON string literal ("{\\"api\\":...}"). as_json_string=False sends the
        plain object instead.
        """
        payload = self.to_json()
        if as_json_string:
            return json.dumps(payload, ensure_ascii=False)
        return payload


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return json.dumps(value)
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def progress_text(payload: Any) -> str:
    """
    Extract the "progress" field of a /sdapi/v1/progress response as text.

    Numbers keep their JSON spelling (0.25 -> "0.25"); a missing field or a
    payload that is not an object yields "".
    """
    if not isinstance(payload, dict):
        return ""
    return _as_text(payload.get("progress"))
