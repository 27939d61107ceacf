"""Progress events and the publish/subscribe channel that carries them."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """翻译进度通知（不持久化）。"""

    job_id: int
    current: int
    total: int
    completed: bool = False
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        """True for the last event of a job, successful or not."""
        return self.completed or self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "jobId": self.job_id,
            "current": self.current,
            "total": self.total,
        }
        if self.completed:
            data["completed"] = True
        if self.error is not None:
            data["error"] = self.error
        return data

    def to_sse(self) -> str:
        """Format the event as one server-sent-events message."""
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"


class Subscription:
    """
    One registered listener, usually tied to one client connection.

    Events for other jobs are ignored here, not by the channel. Matching
    events are handed to ``callback`` if one was given, otherwise buffered
    in a queue for ``get()`` / ``events()``.
    """

    def __init__(
        self,
        channel: "ProgressChannel",
        job_id: Optional[int],
        callback: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> None:
        self.channel = channel
        self.job_id = job_id
        self.callback = callback
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()

    def deliver(self, event: ProgressEvent) -> None:
        if self.job_id is not None and event.job_id != self.job_id:
            return
        if self.callback is not None:
            self.callback(event)
        else:
            self._queue.put_nowait(event)

    async def get(self) -> ProgressEvent:
        """Wait for the next event of this subscription's job."""
        return await self._queue.get()

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Yield events until (and including) the job's terminal event."""
        while True:
            event = await self.get()
            yield event
            if event.is_terminal:
                return

    def close(self) -> None:
        self.channel.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ProgressChannel:
    """
    In-process publish/subscribe register for progress events.

    Created once per serving process and handed to every publisher and
    subscriber. Nothing is persisted; a subscription lives until it is
    unsubscribed, so connection handlers must always unsubscribe.
    """

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, job_id: int) -> Subscription:
        """Register a queue-backed listener for one job."""
        sub = Subscription(self, job_id)
        self._subscriptions.append(sub)
        logger.debug(f"Subscribed to job {job_id} ({self.subscriber_count} active)")
        return sub

    def listen(
        self,
        callback: Callable[[ProgressEvent], None],
        job_id: Optional[int] = None,
    ) -> Subscription:
        """Register a callback; ``job_id=None`` receives every job's events."""
        sub = Subscription(self, job_id, callback)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return
        logger.debug(
            f"Unsubscribed from job {subscription.job_id} ({self.subscriber_count} active)"
        )

    def publish(self, event: ProgressEvent) -> None:
        """Deliver ``event`` synchronously to every registered subscription."""
        # 复制列表：回调中可能取消订阅
        for sub in list(self._subscriptions):
            sub.deliver(event)
