"""Small helpers shared by the pipeline and the HTTP layer."""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog


@asynccontextmanager
async def timed_operation(
    name: str,
    log: structlog.stdlib.BoundLogger | None = None,
    **extra: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Time the enclosed block and optionally log it as event ``name``.

    The yielded dict doubles as extra log context: anything the block
    stores in it is logged alongside ``duration_ms``. Once the block
    exits, successfully or not, ``elapsed_ms`` holds the duration.

        async with timed_operation("webhook_processed", log=log) as timing:
            timing["state"] = (await run()).state.value
    """
    started = time.perf_counter()
    timing: dict[str, Any] = {}
    try:
        yield timing
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        if log:
            log.info(name, duration_ms=elapsed_ms, **{**extra, **timing})
        timing["elapsed_ms"] = elapsed_ms


def parse_positive_int(value: Any, default: int | None = None) -> int | None:
    """Parse a query-string style integer, falling back to ``default``.

    Non-numeric, zero and negative values all yield ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default
