import base64
import binascii
import hashlib
import logging

from stellar_sdk import Keypair
from stellar_sdk.exceptions import BadSignatureError, Ed25519PublicKeyInvalidError

from .config import Settings
from .errors import AuthorizationError
from .types import PlaceOrderRequest

logger = logging.getLogger(__name__)

SIGNED_MESSAGE_PREFIX = "Stellar Signed Message:\n"
SIGNATURE_LENGTH = 64


class SignatureAuthority:
    """
    Canonical order digests bound to one deployment, and ed25519 verification.

    The domain separator commits to the protocol name and version, the network
    passphrase and the settlement contract id, so a signature never verifies
    against another deployment or network.
    """

    def __init__(self, settings: Settings):
        self.protocol_name = settings.protocol_name
        self.protocol_version = settings.protocol_version
        self.network_passphrase = settings.stellar_network_passphrase
        self.contract_id = settings.settlement_contract_id
        self.domain_separator = self._domain_separator()

    def _domain_separator(self) -> bytes:
        parts = [
            f"name:{self.protocol_name}",
            f"version:{self.protocol_version}",
            f"network:{self.network_passphrase}",
            f"contract:{self.contract_id}",
        ]
        return hashlib.sha256("|".join(parts).encode("utf-8")).digest()

    def create_order_message(self, request: PlaceOrderRequest) -> str:
        parts = []
        parts.append(f"maker:{request.maker}")
        parts.append(f"token_in:{request.token_in}")
        parts.append(f"token_out:{request.token_out}")
        parts.append(f"amount_in:{request.amount_in}")
        parts.append(f"amount_out:{request.amount_out}")
        parts.append(f"side:{request.side.value}")
        parts.append(f"expiry:{request.expiry}")
        return "|".join(parts)

    def order_digest(self, request: PlaceOrderRequest) -> bytes:
        message = self.create_order_message(request)
        payload = SIGNED_MESSAGE_PREFIX.encode("utf-8") + self.domain_separator + message.encode("utf-8")
        return hashlib.sha256(payload).digest()

    def sign(self, keypair: Keypair, request: PlaceOrderRequest) -> str:
        return base64.b64encode(keypair.sign(self.order_digest(request))).decode("ascii")

    def verify_order_signature(self, request: PlaceOrderRequest) -> bytes:
        """
        Check that ``request.signature`` was produced by ``request.maker``.

        Returns the digest that was signed; it doubles as the order id.
        """
        if not request.signature:
            raise AuthorizationError("Missing order signature")

        try:
            sig_bytes = base64.b64decode(request.signature, validate=True)
        except (binascii.Error, ValueError):
            raise AuthorizationError("Malformed order signature")
        if len(sig_bytes) != SIGNATURE_LENGTH:
            raise AuthorizationError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(sig_bytes)}")

        try:
            kp = Keypair.from_public_key(request.maker)
        except (Ed25519PublicKeyInvalidError, ValueError):
            raise AuthorizationError(f"Maker {request.maker} is not a signing account")

        digest = self.order_digest(request)
        try:
            kp.verify(digest, sig_bytes)
        except BadSignatureError:
            logger.warning(f"Signature verification failed for maker {request.maker}")
            raise AuthorizationError("Signature does not match maker")
        return digest


def sign_order_request(secret_key: str, request: PlaceOrderRequest, settings: Settings) -> str:
    """Maker-side helper: sign an order for the deployment described by ``settings``."""
    return SignatureAuthority(settings).sign(Keypair.from_secret(secret_key), request)
