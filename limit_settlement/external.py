import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import ExternalCallError, SettlementError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallResult:
    ok: bool
    value: Any = None
    error: Optional[str] = None

    def expect(self, reason: str) -> Any:
        if not self.ok:
            raise ExternalCallError(f"{reason}: {self.error}")
        return self.value


def call(fn: Callable[..., Any], *args: Any) -> CallResult:
    """
    Run an external sub-call; a false return and a raised exception both fail.

    Settlement errors raised by callbacks that re-enter the engine are not
    external failures and propagate unchanged.
    """
    try:
        value = fn(*args)
    except SettlementError:
        raise
    except Exception as e:
        logger.warning(f"External call {getattr(fn, '__name__', fn)} raised: {e}")
        return CallResult(ok=False, error=str(e) or type(e).__name__)

    if value is False:
        return CallResult(ok=False, error="returned false")
    return CallResult(ok=True, value=value)
