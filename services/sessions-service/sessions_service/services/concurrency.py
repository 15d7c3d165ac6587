import asyncio
from collections.abc import Awaitable, Mapping
from typing import Any


async def first_error_wins(*aws: Awaitable[Any]) -> list[Any]:
    """Run awaitables in a task group; the first failure cancels the rest and is re-raised as-is."""
    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(_as_coroutine(aw)) for aw in aws]
    except ExceptionGroup as group:
        raise group.exceptions[0] from None
    return [task.result() for task in tasks]


async def collect_all(aws: Mapping[str, Awaitable[Any]]) -> tuple[dict[str, Any], dict[str, Exception]]:
    """Run named awaitables concurrently and split results from failures.

    Every awaitable runs to completion; cancellation is not swallowed.
    """
    names = list(aws)
    outcomes = await asyncio.gather(*aws.values(), return_exceptions=True)
    results: dict[str, Any] = {}
    errors: dict[str, Exception] = {}
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, Exception):
            errors[name] = outcome
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results[name] = outcome
    return results, errors


async def _as_coroutine(aw: Awaitable[Any]) -> Any:
    return await aw
