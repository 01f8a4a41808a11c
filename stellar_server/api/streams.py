"""In-memory fan-out of supervisor log events to WebSocket subscribers."""

from __future__ import annotations

import asyncio
from asyncio import AbstractEventLoop
from collections import defaultdict
from collections.abc import Callable
from threading import Lock

from stellar_server.runner import JobSupervisor, LogEvent

__all__ = ["LogBroker", "LogSubscription"]

LogSubscription = tuple[asyncio.Queue[LogEvent | None], Callable[[], None]]


class LogBroker:
    """Live subscriber that forwards log events onto asyncio queues per build."""

    def __init__(self) -> None:
        self._subscribers: dict[
            str, list[tuple[asyncio.Queue[LogEvent | None], AbstractEventLoop]]
        ] = defaultdict(list)
        self._lock = Lock()
        self._detach: Callable[[], None] | None = None

    def attach(self, supervisor: JobSupervisor) -> None:
        """Register the broker as a listener on ``supervisor``."""

        with self._lock:
            if self._detach is not None:
                return
            self._detach = supervisor.add_listener(self.publish)

    def close(self) -> None:
        """Detach from the supervisor and release every subscriber."""

        with self._lock:
            detach, self._detach = self._detach, None
            subscribers = [item for items in self._subscribers.values() for item in items]
            self._subscribers.clear()
        if detach is not None:
            detach()
        for queue, loop in subscribers:
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, None)

    def publish(self, event: LogEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(event.job_id, []))
        for queue, loop in subscribers:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(queue.put_nowait, event)

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(job_id, []))

    def subscribe(self, job_id: str) -> LogSubscription:
        """Subscribe the running event loop to events for ``job_id``."""

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[LogEvent | None] = asyncio.Queue()
        with self._lock:
            self._subscribers[job_id].append((queue, loop))

        def _unsubscribe() -> None:
            with self._lock:
                subscribers = self._subscribers.get(job_id)
                if subscribers and (queue, loop) in subscribers:
                    subscribers.remove((queue, loop))
                if not subscribers:
                    self._subscribers.pop(job_id, None)

        return queue, _unsubscribe
