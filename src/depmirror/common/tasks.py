"""asyncio fan-out helpers."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Iterable, List


async def gather_or_cancel(aws: Iterable[Awaitable[Any]]) -> List[Any]:
    """Run awaitables concurrently; on the first failure cancel the rest and re-raise.

    Results are returned in input order. Unlike ``asyncio.gather``, sibling
    work does not keep running after an error.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _cancel(tasks)
        raise

    failed = [t for t in done if not t.cancelled() and t.exception() is not None]
    if failed:
        await _cancel(pending)
        raise failed[0].exception()  # type: ignore[misc]
    return [t.result() for t in tasks]


async def _cancel(tasks: Iterable["asyncio.Future[Any]"]) -> None:
    tasks = [t for t in tasks if not t.done()]
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
