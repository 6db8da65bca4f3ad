import time
from typing import Callable


def wait_for(
    predicate: Callable[[], bool],
    timeout: float,
    interval: float = 0.25,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds elapse.

    Returns whether the predicate held. Worst-case latency is ``timeout``
    plus one evaluation of ``predicate``.
    """
    deadline = clock() + max(0.0, timeout)
    while True:
        if predicate():
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(interval, remaining))
