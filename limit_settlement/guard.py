import logging

from .errors import ReentrancyError

logger = logging.getLogger(__name__)


class NonReentrantLock:
    """
    Single lock shared by every state-mutating entry point.

    It only stops nested calls made from inside an external call; two
    sequential top-level calls are ordered by the host, not by this lock.
    """

    def __init__(self):
        self.locked = False

    def __enter__(self):
        if self.locked:
            logger.warning("Reentrant call rejected")
            raise ReentrancyError("Reentrant call")
        self.locked = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.locked = False
        return False

