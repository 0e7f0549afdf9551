"""Fan-out/fan-in helpers: settle-all task joins and transient retries."""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Generic, TypeVar

from loguru import logger

log = logger.bind(stage="concurrency")

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


@dataclass
class Settled(Generic[T]):
    """Outcome of one task: either a value or the exception it raised."""

    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def settle_all(
    tasks: Mapping[K, Callable[[], T]],
    max_workers: int | None = None,
    timeout: float | None = None,
) -> dict[K, Settled[T]]:
    """Run every task concurrently and wait until all have settled.

    A task that raises, or is still running when ``timeout`` expires, settles
    with an error; nothing is re-raised. Stragglers are abandoned rather than
    joined, so a hung call never holds up the caller past the deadline.
    """
    if not tasks:
        return {}

    workers = max_workers or len(tasks)
    log.debug(f"settle_all: {len(tasks)} tasks, workers={workers}, timeout={timeout}")

    executor = ThreadPoolExecutor(max_workers=workers)
    futures: dict[Future, K] = {}
    try:
        for key, fn in tasks.items():
            futures[executor.submit(fn)] = key
        done, pending = wait(futures.keys(), timeout=timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    results: dict[K, Settled[T]] = {}
    for future, key in futures.items():
        if future in pending:
            future.cancel()
            results[key] = Settled(error=TimeoutError(f"task {key!r} exceeded {timeout}s"))
            log.warning(f"Task {key!r} did not settle within {timeout}s")
            continue
        exc = future.exception()
        if exc is not None:
            results[key] = Settled(error=exc)
        else:
            results[key] = Settled(value=future.result())
    return results


def with_retries(
    fn: Callable[[], T],
    tries: int = 2,
    backoff: float = 0.8,
    retry_on: Callable[[BaseException], bool] = lambda e: True,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` up to ``tries`` times with linearly increasing backoff.

    Only exceptions accepted by ``retry_on`` are retried; the last one is
    re-raised once attempts run out.
    """
    attempts = max(tries, 1)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as e:
            if attempt >= attempts or not retry_on(e):
                raise
            delay = backoff * attempt
            log.debug(f"Attempt {attempt}/{attempts} failed ({e}), retrying in {delay:.1f}s")
            sleep(delay)
    raise AssertionError("unreachable")
