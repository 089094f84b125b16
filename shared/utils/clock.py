import time


def now_ms() -> int:
    """Wall-clock epoch milliseconds, the unit of every stored timestamp."""
    return int(time.time() * 1000)
