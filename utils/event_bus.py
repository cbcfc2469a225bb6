# --------------------------------------------------------------------
# utils/event_bus.py
# --------------------------------------------------------------------
"""A light asyncio pub/sub with ordered, bounded-retry delivery.

One instance is created by the entry point and handed to whoever needs it;
there is no module-level bus.  Handlers run one message at a time, in
publish order, with a pause between messages so chat APIs are not flooded.
A failing handler is retried ``max_retries`` times and then the message is
dropped with a warning; the bus itself never dies.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Union

_Handler = Callable[[object], Union[Awaitable[None], None]]


class EventBus:
    def __init__(
        self,
        max_retries: int = 3,
        delay_between: float = 1.0,
        retry_delay: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._subs: Dict[str, List[_Handler]] = defaultdict(list)
        self._q: Optional[asyncio.Queue] = None
        # background task started lazily on first publish
        self._task: Optional[asyncio.Task] = None
        self.max_retries = max(0, int(max_retries))
        self.delay_between = delay_between
        self.retry_delay = delay_between * 2 if retry_delay is None else retry_delay
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.delivered = 0
        self.dropped = 0

    # -------------------------------------------------------------- #
    def subscribe(self, topic: str, fn: _Handler) -> None:
        self._subs[topic].append(fn)

    def publish(self, topic: str, payload: object) -> None:
        if self._q is None:
            self._q = asyncio.Queue()
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._worker())
        self._q.put_nowait((topic, payload))

    @property
    def pending(self) -> int:
        return self._q.qsize() if self._q is not None else 0

    async def drain(self) -> None:
        """Wait until every published message has been handled."""
        if self._q is not None and self._task is not None and not self._task.done():
            await self._q.join()

    async def close(self, flush: bool = True) -> None:
        if flush:
            await self.drain()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    # -------------------------------------------------------------- #
    async def _deliver(self, fn: _Handler, topic: str, payload: object) -> bool:
        for attempt in range(self.max_retries + 1):
            try:
                res = fn(payload)
                if asyncio.iscoroutine(res):
                    await res
                return True
            except Exception as exc:  # noqa: BLE001 (keep bus alive)
                if attempt >= self.max_retries:
                    self.logger.warning("Dropping %s message after %d attempts: %s",
                                        topic, attempt + 1, exc)
                    return False
                self.logger.info("Delivery of %s failed (attempt %d/%d): %s",
                                 topic, attempt + 1, self.max_retries + 1, exc)
                await asyncio.sleep(self.retry_delay)
        return False

    async def _worker(self) -> None:
        while True:
            topic, payload = await self._q.get()
            try:
                for fn in self._subs.get(topic, []):
                    if await self._deliver(fn, topic, payload):
                        self.delivered += 1
                    else:
                        self.dropped += 1
                if self.delay_between and not self._q.empty():
                    await asyncio.sleep(self.delay_between)
            finally:
                self._q.task_done()
