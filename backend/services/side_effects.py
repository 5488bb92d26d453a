import logging
from contextlib import contextmanager

logger = logging.getLogger(__name__)


@contextmanager
def best_effort(label: str):
    """Run a side effect whose failure must never reach the caller.

    Used around notifications, realtime pushes and outbound email. The
    primary write the side effect is attached to is already decided by the
    time this block runs; a failure here is logged and dropped.
    """
    try:
        yield
    except Exception as e:
        logger.warning(f"{label} failed: {e}")
