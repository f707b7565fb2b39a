"""
Timestamp utilities for consistent time handling across the system.
"""

import time


def now_seconds() -> int:
    """Current Unix time in whole seconds, the resolution stored on graph entities."""
    return int(time.time())
