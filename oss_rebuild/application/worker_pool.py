"""
Bounded parallel execution of pipeline runs.

A dispatcher feeds targets into a bounded queue; `max_concurrency` workers
each run one target to completion before pulling the next. Verdicts are
yielded as targets finish, in completion order. An InternalError in any
worker stops the pool and is re-raised to the consumer.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional

from oss_rebuild.core.domain.models import Target, Verdict
from oss_rebuild.logging import log_event

_DONE = object()


@dataclass
class _Failed:
    error: BaseException


class WorkerPool:
    def __init__(
        self,
        run: Callable[[Target], Awaitable[Verdict]],
        max_concurrency: int,
        queue_size: Optional[int] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.run = run
        self.max_concurrency = max_concurrency
        self.queue_size = queue_size or max_concurrency

    async def process(self, targets: Iterable[Target]) -> AsyncIterator[Verdict]:
        inbox: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        outbox: asyncio.Queue = asyncio.Queue()

        async def dispatch() -> None:
            for target in targets:
                await inbox.put(target)
            for _ in range(self.max_concurrency):
                await inbox.put(_DONE)

        async def worker(index: int) -> None:
            while True:
                target = await inbox.get()
                if target is _DONE:
                    return
                verdict = await self.run(target)
                await outbox.put(verdict)

        async def supervise(tasks: List[asyncio.Task]) -> None:
            try:
                await asyncio.gather(*tasks)
            except Exception as exc:
                await outbox.put(_Failed(exc))
            finally:
                await outbox.put(_DONE)

        tasks = [asyncio.create_task(dispatch())]
        tasks.extend(asyncio.create_task(worker(i)) for i in range(self.max_concurrency))
        supervisor = asyncio.create_task(supervise(tasks))
        log_event("worker_pool_started", concurrency=self.max_concurrency)
        try:
            while True:
                item = await outbox.get()
                if item is _DONE:
                    break
                if isinstance(item, _Failed):
                    raise item.error
                yield item
        finally:
            for task in [*tasks, supervisor]:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, supervisor, return_exceptions=True)
            log_event("worker_pool_stopped")

    async def run_all(self, targets: Iterable[Target]) -> List[Verdict]:
        return [verdict async for verdict in self.process(targets)]
