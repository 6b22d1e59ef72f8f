#!/usr/bin/env python3
"""
Helper script to sign limit orders with a Stellar account key.

The digest is bound to the deployment configured through the environment
(PROTOCOL_NAME, PROTOCOL_VERSION, STELLAR_NETWORK_PASSPHRASE,
SETTLEMENT_CONTRACT_ID), exactly as the settlement engine verifies it.
"""

import sys
import json

from limit_settlement.config import Settings
from limit_settlement.signing import sign_order_request
from limit_settlement.types import PlaceOrderRequest


def sign_order(secret_key_strkey: str, order_json: str) -> str:
    """
    Sign an order using a Stellar secret key.

    Args:
        secret_key_strkey: Stellar secret key in StrKey format (starts with 'S')
        order_json: JSON string of the order to sign
    """
    request = PlaceOrderRequest(**json.loads(order_json))
    return sign_order_request(secret_key_strkey, request, Settings())


def main():
    if len(sys.argv) != 3:
        print("Usage: python3 sign_order.py <secret_key_strkey> <order_json>", file=sys.stderr)
        print("\nExample:", file=sys.stderr)
        print("  python3 sign_order.py S... '{\"maker\":\"G...\",\"token_in\":\"C...\",...}'", file=sys.stderr)
        sys.exit(1)

    secret_key = sys.argv[1]
    order_json = sys.argv[2]

    try:
        signature = sign_order(secret_key, order_json)
        print(signature)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
