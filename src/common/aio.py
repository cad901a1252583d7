"""asyncio helpers shared by the resolver, recipe sources and install tasks."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Awaitable, List, TypeVar

T = TypeVar("T")


async def gather_or_cancel(*aws: Awaitable[T]) -> List[T]:
    """Run awaitables concurrently; the first failure cancels the rest.

    Results keep the order of ``aws`` regardless of completion order.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def merge_streams(*streams: AsyncIterator[Any]) -> AsyncIterator[Any]:
    """Interleave several async iterators into one, in arrival order.

    Items from one stream keep their relative order. The first stream to
    raise cancels the others and the error is re-raised to the consumer.
    """
    queue: "asyncio.Queue[Any]" = asyncio.Queue()
    done = object()

    async def _pump(stream: AsyncIterator[Any]) -> None:
        async for item in stream:
            await queue.put(item)
        await queue.put(done)

    tasks = [asyncio.ensure_future(_pump(stream)) for stream in streams]
    remaining = len(tasks)
    try:
        while remaining:
            for task in tasks:
                if task.done() and not task.cancelled() and task.exception() is not None:
                    raise task.exception()  # type: ignore[misc]
            getter = asyncio.ensure_future(queue.get())
            finished, _ = await asyncio.wait(
                [getter, *[t for t in tasks if not t.done()]],
                return_when=asyncio.FIRST_COMPLETED,
            )
            if getter not in finished:
                getter.cancel()
                continue
            item = getter.result()
            if item is done:
                remaining -= 1
                continue
            yield item
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
