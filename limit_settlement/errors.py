class SettlementError(Exception):
    """Base class for every error that aborts a settlement call."""


class ValidationError(SettlementError):
    """Malformed order fields, expired-at-creation orders, zero amounts."""


class AuthorizationError(SettlementError):
    """Wrong caller, missing allowance, invalid or replayed signature."""


class StateError(SettlementError):
    """Inactive or unknown order, duplicate identifier, insufficient remaining amount."""


class ReentrancyError(StateError):
    pass


class ExternalCallError(SettlementError):
    """A token, router or native value transfer failed or returned false."""


class AmountOverflowError(SettlementError, ArithmeticError):
    pass
