"""
scheduler.py
------------
Cooperative single-consumer priority queue that drives the monitoring jobs.

* Three bands: open trades (1) > watchlist (2) > anomaly scan (3).
* Drained strictly by band, FIFO inside a band, one job at a time.
* Producers enqueue on their own timers and wake the worker.
* An empty queue is re-seeded with one scan job.
* Scan jobs pass through :class:`ScanRateLimiter` before they run.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Awaitable, Callable, Dict, List, Optional

JobFn = Callable[[], Awaitable[Any]]


class Priority(IntEnum):
    TRADES = 1
    WATCHLIST = 2
    SCAN = 3


@dataclass(order=True)
class SchedulerJob:
    priority: int
    seq: int
    name: str = field(compare=False)
    run: JobFn = field(compare=False, repr=False)
    enqueued_at: float = field(compare=False, default=0.0)


class ScanRateLimiter:
    """Minimum interval between scans plus a back-off after an overlong scan."""

    def __init__(self, min_interval: float, max_duration: float,
                 clock: Callable[[], float] = time.time) -> None:
        self.min_interval = float(min_interval)
        self.max_duration = float(max_duration)
        self.clock = clock
        self.last_start: Optional[float] = None
        self.last_duration: Optional[float] = None
        self.backoff_until: Optional[float] = None

    def refusal_reason(self, now: Optional[float] = None) -> Optional[str]:
        now = self.clock() if now is None else now
        if self.backoff_until is not None and now < self.backoff_until:
            return (f"backing off after a {self.last_duration:.0f}s scan, "
                    f"{self.backoff_until - now:.0f}s left")
        if self.last_start is not None and now - self.last_start < self.min_interval:
            return f"last scan started {now - self.last_start:.0f}s ago"
        return None

    def allow(self, now: Optional[float] = None) -> bool:
        return self.refusal_reason(now) is None

    def started(self, now: Optional[float] = None) -> None:
        self.last_start = self.clock() if now is None else now

    def finished(self, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        if self.last_start is None:
            return
        self.last_duration = now - self.last_start
        if self.last_duration > self.max_duration:
            self.backoff_until = now + self.min_interval

    def snapshot(self) -> Dict[str, Optional[float]]:
        return {
            "lastScanStart": self.last_start,
            "lastScanDuration": self.last_duration,
            "backoffUntil": self.backoff_until,
        }


@dataclass
class _Producer:
    priority: Priority
    name: str
    interval: float
    factory: JobFn
    delay_first: bool = False


class PriorityScheduler:
    def __init__(
        self,
        scan_factory: Optional[JobFn] = None,
        max_depth: int = 50,
        scan_limiter: Optional[ScanRateLimiter] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.scan_factory = scan_factory
        self.max_depth = max_depth
        self.scan_limiter = scan_limiter
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.clock = clock

        self._heap: List[SchedulerJob] = []
        self._seq = itertools.count()
        self._producers: List[_Producer] = []
        self._tasks: List[asyncio.Task] = []
        self._wakeup: Optional[asyncio.Event] = None
        self._running = False
        self.stats = {"executed": 0, "failed": 0, "dropped": 0, "purged": 0, "deferred": 0}

    def __len__(self) -> int:
        return len(self._heap)

    # ------------------------------------------------------------------ #
    # Queue
    # ------------------------------------------------------------------ #
    def enqueue(self, priority: int, name: str, run: JobFn) -> bool:
        """Add a job; returns False when it was dropped by the overflow policy."""
        priority = Priority(priority)
        if len(self._heap) >= self.max_depth:
            if priority is Priority.SCAN:
                self.stats["dropped"] += 1
                self.logger.warning("Queue full (%d), dropping %s", len(self._heap), name)
                return False
            before = len(self._heap)
            self._heap = [j for j in self._heap if j.priority != Priority.SCAN]
            heapq.heapify(self._heap)
            purged = before - len(self._heap)
            self.stats["purged"] += purged
            self.logger.warning("Queue full (%d), purged %d scan jobs for %s", before, purged, name)

        heapq.heappush(self._heap, SchedulerJob(priority, next(self._seq), name, run, self.clock()))
        return True

    def pending(self) -> List[str]:
        return [job.name for job in sorted(self._heap)]

    async def run_next(self) -> Optional[SchedulerJob]:
        """Pop the most urgent job and run it to completion."""
        if not self._heap:
            return None
        job = heapq.heappop(self._heap)
        guarded = job.priority == Priority.SCAN and self.scan_limiter is not None

        if guarded:
            reason = self.scan_limiter.refusal_reason()
            if reason is not None:
                self.stats["deferred"] += 1
                self.logger.info("⏸ %s deferred: %s", job.name, reason)
                return job
            self.scan_limiter.started()

        started = self.clock()
        try:
            await job.run()
            self.stats["executed"] += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            self.stats["failed"] += 1
            self.logger.exception("Job %s failed", job.name)
        finally:
            if guarded:
                self.scan_limiter.finished()
        self.logger.info("✅ %s done in %.1fs (queue %d)", job.name, self.clock() - started, len(self._heap))
        return job

    async def drain(self) -> int:
        """Run jobs until the queue is empty, then seed one scan job.

        The seed does not wake the worker; it runs with whatever the next
        producer tick enqueues.  A seed refused by the scan limiter is thus
        deferred at most once per producer tick.  The queue is never empty,
        but it can sit idle until the next producer timer fires.
        """
        ran = 0
        while self._heap:
            await self.run_next()
            ran += 1
        if self.scan_factory is not None:
            self.enqueue(Priority.SCAN, "anomaly-scan (seed)", self.scan_factory)
        return ran

    # ------------------------------------------------------------------ #
    # Producers
    # ------------------------------------------------------------------ #
    def add_producer(self, priority: int, name: str, interval: float, factory: JobFn,
                     delay_first: bool = False) -> None:
        self._producers.append(
            _Producer(Priority(priority), name, float(interval), factory, delay_first)
        )

    async def _produce(self, producer: _Producer) -> None:
        if producer.delay_first:
            await asyncio.sleep(producer.interval)
        while self._running:
            if self.enqueue(producer.priority, producer.name, producer.factory):
                self._wakeup.set()
            await asyncio.sleep(producer.interval)

    async def _work(self) -> None:
        while self._running:
            await self._wakeup.wait()
            self._wakeup.clear()
            await self.drain()

    async def run_forever(self) -> None:
        self._running = True
        self._wakeup = asyncio.Event()
        self._tasks = [asyncio.create_task(self._produce(p), name=p.name) for p in self._producers]
        worker = asyncio.create_task(self._work(), name="scheduler-worker")
        self._tasks.append(worker)
        self.logger.info("Scheduler started with %d producers", len(self._producers))
        try:
            await worker
        except asyncio.CancelledError:
            self.logger.info("Scheduler cancelled – shutting down")
        finally:
            await self.stop()

    async def stop(self) -> None:
        self._running = False
        current = asyncio.current_task()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            if task is not current and not task.done():
                task.cancel()
        for task in tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass

    def snapshot(self) -> Dict[str, Any]:
        return {
            "queueDepth": len(self._heap),
            "pending": self.pending(),
            **self.stats,
            **(self.scan_limiter.snapshot() if self.scan_limiter else {}),
        }
