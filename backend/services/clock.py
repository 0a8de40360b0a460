"""Injectable time source shared by the cache and the admin auth stores.

A clock is any zero-argument callable returning seconds since the epoch as a
float. Production code passes ``system_clock``; tests pass a fake they can
advance.
"""

import time
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()
