"""Transport-side view of a delivered batch.

The dispatcher never talks to a concrete queue.  A transport (the
in-memory broker, the HTTP push endpoint) wraps each delivery in a
:class:`DeliveredMessage` whose :meth:`~DeliveredMessage.ack` and
:meth:`~DeliveredMessage.retry` calls settle it, and groups them into a
:class:`MessageBatch`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable

import structlog

logger = structlog.get_logger(logger_name=__name__)


class Disposition(str, Enum):
    PENDING = "pending"
    ACK = "ack"
    RETRY = "retry"


SettleCallback = Callable[["DeliveredMessage", Disposition, "str | None"], None]


class DeliveredMessage:
    """One message as delivered by the transport.

    Parameters
    ----------
    message_id:
        Transport message id; becomes the envelope's ``correlationId``.
    body:
        Decoded message body.
    attempts:
        Delivery-attempt counter (1 on first delivery).
    on_settle:
        Called once with the final disposition and, for retries, a reason.
    """

    def __init__(
        self,
        message_id: str,
        body: Any,
        attempts: int = 1,
        on_settle: SettleCallback | None = None,
    ) -> None:
        self._id = message_id
        self._body = body
        self._attempts = attempts
        self._on_settle = on_settle
        self._disposition = Disposition.PENDING
        self._reason: str | None = None

    @property
    def id(self) -> str:
        return self._id

    @property
    def body(self) -> Any:
        return self._body

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def disposition(self) -> Disposition:
        return self._disposition

    @property
    def reason(self) -> str | None:
        return self._reason

    def ack(self) -> None:
        """Acknowledge: remove the message from the queue."""
        self._settle(Disposition.ACK, None)

    def retry(self, reason: str | None = None) -> None:
        """Request redelivery."""
        self._settle(Disposition.RETRY, reason)

    def _settle(self, disposition: Disposition, reason: str | None) -> None:
        # First settlement wins; a message cannot be both acked and retried.
        if self._disposition is not Disposition.PENDING:
            logger.debug(
                "message_already_settled",
                message_id=self._id,
                disposition=self._disposition.value,
                ignored=disposition.value,
            )
            return
        self._disposition = disposition
        self._reason = reason
        if self._on_settle is not None:
            self._on_settle(self, disposition, reason)


class MessageBatch:
    """A bounded batch of deliveries from one named queue."""

    def __init__(self, queue: str, messages: list[DeliveredMessage]) -> None:
        self._queue = queue
        self._messages = list(messages)

    @property
    def queue(self) -> str:
        return self._queue

    @property
    def messages(self) -> list[DeliveredMessage]:
        return list(self._messages)

    def ack_all(self) -> None:
        for message in self._messages:
            message.ack()

    def retry_all(self, reason: str | None = None) -> None:
        for message in self._messages:
            message.retry(reason)

    def __len__(self) -> int:
        return len(self._messages)
