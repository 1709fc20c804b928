# anchorstore/core/clock.py
import time


def get_timestamp() -> int:
    """Current Unix time in whole seconds (the timestamp unit of every idData)."""
    return int(time.time())
