"""TON HTTP API (toncenter v2) client and address helpers."""

import base64
import logging
import re
import zlib
from typing import Any, Optional

import httpx
from tonsdk.boc import Cell

from moleswap.errors import ChainAdapterError

logger = logging.getLogger(__name__)

TON_NATIVE_ADDRESS = "EQAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAM9c"

RAW_ADDRESS_RE = re.compile(r"^-?\d+:[0-9a-fA-F]{64}$")
FRIENDLY_ADDRESS_RE = re.compile(r"^[A-Za-z0-9_\-+/]{48}$")


def is_valid_ton_address(address: str) -> bool:
    """Check raw (wc:hex) or user-friendly (48 char base64) address form."""
    return bool(RAW_ADDRESS_RE.match(address) or FRIENDLY_ADDRESS_RE.match(address))


def op_code(name: str) -> int:
    """Contract op codes are the CRC32 of the operation name."""
    return zlib.crc32(name.encode())


class ToncenterClient:
    """Minimal async client for the toncenter v2 HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize client.

        Args:
            base_url: e.g. https://testnet.toncenter.com/api/v2
            api_key: Optional API key for higher rate limits
            timeout: Request timeout in seconds
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        headers = {"X-API-Key": api_key} if api_key else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _unwrap(self, response: httpx.Response) -> Any:
        try:
            data = response.json()
        except ValueError:
            raise ChainAdapterError(f"TON API returned non-JSON response ({response.status_code})")
        if response.status_code != 200 or not data.get("ok"):
            raise ChainAdapterError(
                f"TON API error: {data.get('error') or response.status_code}",
                {"status": response.status_code},
            )
        return data["result"]

    async def _get(self, path: str, **params) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ChainAdapterError(f"TON API request failed: {e}")
        return await self._unwrap(response)

    async def _post(self, path: str, payload: dict) -> Any:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise ChainAdapterError(f"TON API request failed: {e}")
        return await self._unwrap(response)

    async def get_address_information(self, address: str) -> dict:
        """Account state and balance."""
        return await self._get("/getAddressInformation", address=address)

    async def get_balance(self, address: str) -> int:
        info = await self.get_address_information(address)
        return int(info.get("balance", 0))

    async def get_seqno(self, wallet_address: str) -> int:
        """Current wallet seqno (0 for an undeployed wallet)."""
        info = await self._get("/getWalletInformation", address=wallet_address)
        return int(info.get("seqno") or 0)

    async def run_get_method(
        self, address: str, method: str, stack: Optional[list] = None
    ) -> list:
        """Run a contract get-method and return its stack.

        Raises:
            ChainAdapterError: on a non-zero exit code
        """
        result = await self._post(
            "/runGetMethod", {"address": address, "method": method, "stack": stack or []}
        )
        exit_code = result.get("exit_code", 0)
        if exit_code != 0:
            raise ChainAdapterError(f"Get-method {method} failed with exit code {exit_code}")
        return result.get("stack", [])

    async def send_boc(self, boc_b64: str) -> dict:
        """Broadcast a serialized external message."""
        return await self._post("/sendBoc", {"boc": boc_b64})

    async def is_healthy(self) -> bool:
        info = await self._get("/getMasterchainInfo")
        return bool(info.get("last"))


def stack_int(entry: list) -> int:
    """Read a number entry of a get-method stack."""
    kind, value = entry[0], entry[1]
    if kind != "num":
        raise ChainAdapterError(f"Expected num on stack, got {kind}")
    return int(value, 16) if str(value).startswith(("0x", "-0x")) else int(value)


def stack_address(entry: list) -> str:
    """Read an address slice entry of a get-method stack (bounceable form)."""
    kind, value = entry[0], entry[1]
    if kind not in ("cell", "slice"):
        raise ChainAdapterError(f"Expected cell on stack, got {kind}")
    raw = base64.b64decode(value["bytes"])
    address = Cell.one_from_boc(raw).begin_parse().read_msg_addr()
    if address is None:
        raise ChainAdapterError("Empty address on stack")
    return address.to_string(True, True, True)


def int_stack_arg(value: int) -> list:
    """Encode an integer argument for runGetMethod."""
    return ["num", hex(value)]
