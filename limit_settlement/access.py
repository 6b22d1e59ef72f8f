import logging
from typing import Any, Optional

from .errors import AuthorizationError, StateError
from .validator import require_address

logger = logging.getLogger(__name__)


class AccessControl:
    """Single controller identity, handed over in two steps."""

    def __init__(self, controller: str):
        self.controller = require_address(controller, "controller")
        self.pending: Optional[str] = None

    def require_controller(self, caller: str):
        if caller != self.controller:
            raise AuthorizationError(f"{caller} is not the controller")

    def propose(self, caller: str, new_controller: str):
        self.require_controller(caller)
        self.pending = require_address(new_controller, "controller")

    def accept(self, caller: str) -> str:
        if self.pending is None:
            raise StateError("No controller transfer pending")
        if caller != self.pending:
            raise AuthorizationError(f"{caller} is not the pending controller")
        previous, self.controller, self.pending = self.controller, caller, None
        return previous

    def snapshot(self) -> Any:
        return self.controller, self.pending

    def restore(self, state: Any) -> None:
        self.controller, self.pending = state
