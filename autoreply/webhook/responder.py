"""Simulated delivery channel for replies.

Real platform delivery is not part of this service; the CLI wires this
responder in instead. It succeeds at a configurable rate per channel and
sleeps for a random latency, which is enough to exercise retries, fallback
comments and timeouts end to end.
"""

import asyncio
import random
import string
import time
from typing import Optional

from autoreply.config.models import ResponderConfig
from autoreply.domain.models import ResponseKind, ResponseResult
from autoreply.logging import get_logger

logger = get_logger(__name__, component="responder")

FAILURE_MESSAGES = {
    ResponseKind.DM: ("DM_FAILED", "Cannot send DM to private account that doesn't follow back"),
    ResponseKind.COMMENT: ("COMMENT_FAILED", "Comment posting failed due to platform restrictions"),
}


class SimulatedResponder:
    """Responder whose outcome is drawn from a seedable random generator."""

    def __init__(self, config: Optional[ResponderConfig] = None):
        self.config = config or ResponderConfig()
        self._random = random.Random(self.config.seed)

    async def send(
        self, kind: ResponseKind, recipient_id: str, message: str, mode: Optional[str] = None
    ) -> ResponseResult:
        kind = ResponseKind(kind)
        latency_ms = self._random.randint(self.config.min_latency_ms, self.config.max_latency_ms)
        await asyncio.sleep(latency_ms / 1000.0)

        success_rate = (
            self.config.dm_success_rate
            if kind == ResponseKind.DM
            else self.config.comment_success_rate
        )
        if self._random.random() < success_rate:
            response_id = "sim_{}_{}".format(
                int(time.time() * 1000),
                "".join(self._random.choices(string.ascii_lowercase + string.digits, k=9)),
            )
            logger.debug(
                "Simulated reply delivered",
                extra={
                    "event": "responder.sent",
                    "kind": kind.value,
                    "recipient_id": recipient_id,
                    "reply_mode": mode,
                    "latency_ms": latency_ms,
                },
            )
            return ResponseResult(
                success=True, kind=kind, response_id=response_id, latency_ms=latency_ms
            )

        error_code, error_message = FAILURE_MESSAGES[kind]
        logger.debug(
            "Simulated reply failed",
            extra={
                "event": "responder.failed",
                "kind": kind.value,
                "recipient_id": recipient_id,
                "error_code": error_code,
            },
        )
        return ResponseResult(
            success=False,
            kind=kind,
            latency_ms=latency_ms,
            error_code=error_code,
            error_message=error_message,
        )
