"""Error taxonomy shared by the relayer and the resolver.

Every error carries a machine-readable ``code`` and optional ``details`` so
the API layer can render it into the ``{success, error}`` envelope without
knowing the concrete class.
"""

from typing import Any, Optional


class MoleSwapError(Exception):
    """Base class for all MoleSwap errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render as the API error object."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


class ValidationError(MoleSwapError):
    """Malformed input: hash, address, amount or secret format."""

    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidTransitionError(MoleSwapError):
    """Order status change not allowed by the transition table."""

    code = "INVALID_TRANSITION"
    status_code = 400

    def __init__(self, order_hash: str, current: str, requested: str):
        super().__init__(
            f"Cannot transition order {order_hash} from {current} to {requested}",
            {"orderHash": order_hash, "currentStatus": current, "requestedStatus": requested},
        )
        self.current = current
        self.requested = requested


class ChainNotSupportedError(MoleSwapError):
    """No plugin or adapter registered for the requested chain id."""

    code = "CHAIN_NOT_SUPPORTED"
    status_code = 400

    def __init__(self, chain_id: str):
        super().__init__(f"No plugin found for chain {chain_id}", {"chainId": str(chain_id)})
        self.chain_id = str(chain_id)


class PriceUnavailableError(MoleSwapError):
    """Oracle has no price for an asset."""

    code = "PRICE_UNAVAILABLE"
    status_code = 503


class DecryptionError(MoleSwapError):
    """Ciphertext could not be decrypted (wrong key or corrupt data)."""

    code = "DECRYPTION_FAILED"
    status_code = 500


class TimeoutError(MoleSwapError):
    """Chain confirmation polling ran out of attempts."""

    code = "CONFIRMATION_TIMEOUT"
    status_code = 504


class IncompleteOrderError(MoleSwapError):
    """Order lacks the extension or signature needed for a deposit."""

    code = "INCOMPLETE_ORDER"
    status_code = 400


class EscrowValidationFailedError(MoleSwapError):
    """On-chain escrow state does not match the order."""

    code = "ESCROW_VALIDATION_FAILED"
    status_code = 400


class OrderNotFoundError(MoleSwapError):
    """No order stored under the given hash."""

    code = "ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, order_hash: str):
        super().__init__(f"Order {order_hash} not found", {"orderHash": order_hash})


class OrderAlreadyExistsError(MoleSwapError):
    """An order with the same hash is already stored."""

    code = "ORDER_ALREADY_EXISTS"
    status_code = 409

    def __init__(self, order_hash: str):
        super().__init__(f"Order {order_hash} already exists", {"orderHash": order_hash})


class InvalidSignatureError(MoleSwapError):
    """Order signature does not recover to the maker."""

    code = "INVALID_SIGNATURE"
    status_code = 400


class ConfigurationError(MoleSwapError):
    """Startup configuration is missing or invalid.

    All problems found are reported together in ``errors``.
    """

    code = "CONFIGURATION_ERROR"

    def __init__(self, errors: list[str]):
        super().__init__(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors),
            {"errors": errors},
        )
        self.errors = errors


class RelayerError(MoleSwapError):
    """The relayer API answered with an error or could not be reached."""

    code = "RELAYER_ERROR"
    status_code = 502


class ChainAdapterError(MoleSwapError):
    """A chain call (RPC, transaction, get-method) failed."""

    code = "CHAIN_ERROR"
    status_code = 502


class InvalidOrderError(ValidationError):
    """Order payload failed validation."""

    code = "INVALID_ORDER"


class InvalidSecretRequestError(MoleSwapError):
    """Secret requested for an unknown order or one that is not active."""

    code = "INVALID_SECRET_REQUEST"
    status_code = 400


class InvalidAddressError(MoleSwapError):
    """Escrow address has the wrong format for its chain."""

    code = "INVALID_ADDRESS"
    status_code = 400


class SecretNotFoundError(MoleSwapError):
    """No secret is held for an order."""

    code = "SECRET_NOT_FOUND"
    status_code = 404
