"""Bounded polling and phase timing.

Every wait in the provisioning pipeline (instance readiness, volume
available, volume in-use, remote control) goes through ``poll_until``,
which retries a boolean check at a fixed interval on top of tenacity.

Example:
    from skylaunch.retry import Timer, poll_until

    with Timer() as timer:
        poll_until(lambda: client.volume_state(vid) == "available",
                   tries=60, interval=5.0, description=f"volume {vid}")
    metrics["volume_time"] = timer.elapsed
"""

from __future__ import annotations

import time
from collections.abc import Callable
from types import TracebackType
from typing import Self

from tenacity import (
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    stop_never,
    wait_fixed,
)

from skylaunch.exceptions import PollTimeout

type Sleep = Callable[[float], None]
type Check = Callable[[], bool]


def _not_ready(result: bool) -> bool:
    return not result


def poll_until(
    check: Check,
    *,
    tries: int | None,
    interval: float = 0.0,
    sleep: Sleep = time.sleep,
    description: str = "resource",
) -> int:
    """Call ``check`` until it returns True.

    Exceptions raised by ``check`` are not retried; they propagate
    unchanged on the attempt that raised them.

    Args:
        check: Returns True once the awaited condition holds.
        tries: Maximum number of checks. ``None`` polls forever.
        interval: Seconds slept between checks.
        sleep: Sleep function, injectable for tests.
        description: Description for error messages.

    Returns:
        Number of checks performed.

    Raises:
        PollTimeout: If ``tries`` checks all returned False.
    """
    budget = max(tries, 1) if tries is not None else None
    retrying = Retrying(
        stop=stop_after_attempt(budget) if budget is not None else stop_never,
        wait=wait_fixed(interval),
        retry=retry_if_result(_not_ready),
        sleep=sleep,
    )
    try:
        retrying(check)
    except RetryError as e:
        raise PollTimeout(description, budget or 0) from e
    return retrying.statistics.get("attempt_number", 1)


class Timer:
    """Wall-clock timer for a pipeline phase.

    Usable as a context manager, or through ``Timer.time(fn)`` which
    returns ``(result, elapsed)``. ``elapsed`` is live while running.
    """

    __slots__ = ("_clock", "_start", "_end")

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._start: float | None = None
        self._end: float | None = None

    def start(self) -> Self:
        self._start = self._clock()
        self._end = None
        return self

    def stop(self) -> float:
        self._end = self._clock()
        return self.elapsed

    @property
    def elapsed(self) -> float:
        if self._start is None:
            return 0.0
        end = self._end if self._end is not None else self._clock()
        return end - self._start

    def __enter__(self) -> Self:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    @classmethod
    def time[T](cls, fn: Callable[[], T]) -> tuple[T, float]:
        with cls() as timer:
            result = fn()
        return result, timer.elapsed
