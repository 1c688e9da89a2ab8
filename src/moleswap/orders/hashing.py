"""EIP-712 order hashing and signature verification."""

import logging
import secrets
from typing import Any, Optional

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak, to_checksum_address

from moleswap.orders.schemas import Order

logger = logging.getLogger(__name__)

DOMAIN = {
    "name": "MoleSwap Relayer",
    "version": "1.0.0",
    "chainId": 1,
    "verifyingContract": "0x0000000000000000000000000000000000000000",
}

TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Order": [
        {"name": "maker", "type": "address"},
        {"name": "makerAsset", "type": "address"},
        {"name": "takerAsset", "type": "address"},
        {"name": "makerTraits", "type": "bytes32"},
        {"name": "salt", "type": "uint256"},
        {"name": "makingAmount", "type": "uint256"},
        {"name": "takingAmount", "type": "uint256"},
        {"name": "receiver", "type": "address"},
    ],
}


def typed_data(order: Order) -> dict[str, Any]:
    """Build the EIP-712 payload a maker signs."""
    return {
        "types": TYPES,
        "primaryType": "Order",
        "domain": DOMAIN,
        "message": {
            "maker": to_checksum_address(order.maker),
            "makerAsset": to_checksum_address(order.maker_asset),
            "takerAsset": to_checksum_address(order.taker_asset),
            "makerTraits": order.maker_traits,
            "salt": int(order.salt),
            "makingAmount": int(order.making_amount),
            "takingAmount": int(order.taking_amount),
            "receiver": to_checksum_address(order.receiver),
        },
    }


def _signable(order: Order) -> SignableMessage:
    return encode_typed_data(full_message=typed_data(order))


def order_hash(order: Order) -> str:
    """Compute the EIP-712 digest of an order."""
    message = _signable(order)
    digest = keccak(b"\x19" + message.version + message.header + message.body)
    return "0x" + digest.hex()


def sign_order(order: Order, private_key: str) -> str:
    """Sign an order with a maker key (used by scripts and tests)."""
    signed = Account.sign_message(_signable(order), private_key=private_key)
    return "0x" + bytes(signed.signature).hex()


def recover_signer(order: Order, signature: str) -> str:
    """Recover the address that signed an order."""
    return Account.recover_message(_signable(order), signature=signature)


def verify_order_signature(
    order: Order, signature: str, expected_signer: Optional[str] = None
) -> tuple[bool, Optional[str], Optional[str]]:
    """Verify an order signature.

    Args:
        order: The signed order
        signature: 65-byte hex signature
        expected_signer: Defaults to the order's maker

    Returns:
        Tuple of (valid, recovered signer, error message)
    """
    expected = (expected_signer or order.maker).lower()
    try:
        signer = recover_signer(order, signature)
    except Exception as e:
        logger.warning(f"Signature recovery failed: {e}")
        return False, None, "Invalid signature format"

    if signer.lower() != expected:
        return False, signer, "Signature does not match maker address"
    return True, signer, None


def random_salt() -> str:
    """Generate a random non-zero uint256 salt."""
    return str(secrets.randbits(256) or 1)
