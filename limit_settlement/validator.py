import hashlib
import logging
from typing import Any, Dict, Optional, Tuple

from stellar_sdk import strkey

from . import external
from .amounts import MAX_AMOUNT, is_amount
from .config import Settings
from .errors import AuthorizationError, StateError, ValidationError
from .ledger import Token
from .signing import SignatureAuthority
from .store import OrderStore
from .types import OrderIdScheme, PlaceOrderRequest

logger = logging.getLogger(__name__)

ZERO_ACCOUNT = strkey.StrKey.encode_ed25519_public_key(b"\x00" * 32)
ZERO_CONTRACT = strkey.StrKey.encode_contract(b"\x00" * 32)


def is_address(value: Optional[str]) -> bool:
    if not value:
        return False
    return strkey.StrKey.is_valid_ed25519_public_key(value) or strkey.StrKey.is_valid_contract(value)


def is_zero_address(value: str) -> bool:
    return value in (ZERO_ACCOUNT, ZERO_CONTRACT)


def require_address(value: Optional[str], field: str) -> str:
    if not is_address(value) or is_zero_address(value):
        raise ValidationError(f"Invalid {field} address: {value!r}")
    return value


class OrderValidator:
    """Admission checks and identifier assignment for new orders."""

    def __init__(self, settings: Settings, signatures: SignatureAuthority, store: OrderStore):
        self.id_scheme = settings.order_id_scheme
        self.contract_id = settings.settlement_contract_id
        self.signatures = signatures
        self.store = store
        self.nonces: Dict[str, int] = {}

    def check_fields(self, request: PlaceOrderRequest, now: int, require_router: bool = False):
        require_address(request.token_in, "token_in")
        require_address(request.token_out, "token_out")
        if request.token_in == request.token_out:
            raise ValidationError("token_in and token_out must differ")
        if require_router:
            require_address(request.router, "router")
        if request.maker is not None:
            require_address(request.maker, "maker")

        for field in ("amount_in", "amount_out"):
            value = getattr(request, field)
            if not is_amount(value) or value == 0:
                raise ValidationError(f"{field} must be in (0, {MAX_AMOUNT}], got {value}")

        if request.expiry <= now:
            raise ValidationError(f"Expiry {request.expiry} is not in the future (now {now})")

    def check_allowance(self, token: Token, owner: str, amount: int):
        allowed = external.call(token.allowance, owner, self.contract_id).expect(
            f"Allowance query on {token.address} failed"
        )
        if allowed < amount:
            raise AuthorizationError(
                f"Allowance {allowed} on {token.address} is below amount_in {amount}"
            )

    def check_signature(self, request: PlaceOrderRequest) -> str:
        """Verify the maker's signature and return the digest-derived order id."""
        if request.maker is None:
            raise ValidationError("Signed orders must name their maker")

        order_id = self.signatures.verify_order_signature(request).hex()
        if order_id in self.store:
            raise AuthorizationError(f"Signature for order {order_id} was already used")
        return order_id

    def assign_id(self, creator: str, block: int, timestamp: int) -> Tuple[str, Optional[int]]:
        if self.id_scheme == OrderIdScheme.BlockTime:
            # Two orders from one creator in the same block and second collide
            seed = f"{creator}|{block}|{timestamp}"
            nonce = None
        else:
            nonce = self.nonces.get(creator, 0)
            self.nonces[creator] = nonce + 1
            seed = f"{creator}|{block}|{timestamp}|{nonce}"

        order_id = hashlib.sha256(seed.encode("utf-8")).hexdigest()
        if order_id in self.store:
            raise StateError(f"Order {order_id} already exists")
        return order_id, nonce

    def snapshot(self) -> Any:
        return dict(self.nonces)

    def restore(self, state: Any) -> None:
        self.nonces = dict(state)
