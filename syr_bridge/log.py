"""Stderr logging helpers shared by the bridge modules."""
import sys
from datetime import datetime

_verbose = False


def set_verbose(enabled: bool):
    global _verbose
    _verbose = bool(enabled)


def info(*a):
    print(f"[{datetime.now().isoformat(timespec='seconds')}] [SYR]", *a, file=sys.stderr, flush=True)


# Only printed when VERBOSE_LOGGING is enabled
def log(*a):
    if _verbose:
        info(*a)
