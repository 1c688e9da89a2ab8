"""HTTP client for the relayer API."""

import logging
from typing import Any, Optional

import httpx

from moleswap.errors import RelayerError

logger = logging.getLogger(__name__)


class RelayerClient:
    """Async client for the relayer's order and secret endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def health_check(self) -> bool:
        """Check if relayer is healthy."""
        try:
            response = await self._client.get("/health")
            return response.status_code == 200 and response.json().get("status") == "healthy"
        except httpx.HTTPError as e:
            logger.error(f"Relayer health check failed: {e}")
            return False

    async def get_orders(
        self,
        limit: int = 50,
        offset: int = 0,
        status: Optional[str] = None,
        src_chain_id: Optional[int] = None,
        dst_chain_id: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Fetch one page of orders.

        Raises:
            RelayerError: request failed or the relayer reported an error
        """
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if src_chain_id:
            params["srcChainId"] = src_chain_id
        if dst_chain_id:
            params["dstChainId"] = dst_chain_id

        try:
            response = await self._client.get("/api/orders", params=params)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RelayerError(f"Failed to fetch orders: {e}")

        if not body.get("success"):
            error = body.get("error") or {}
            raise RelayerError(error.get("message", "Failed to fetch orders"), error)
        return (body.get("data") or {}).get("orders", [])

    async def get_active_orders(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        return await self.get_orders(limit, offset, status="active")

    async def get_processable_orders(
        self, limit: int = 50, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Active and pending orders, de-duplicated, newest first."""
        active = await self.get_orders(limit, offset, status="active")
        pending = await self.get_orders(limit, offset, status="pending")

        unique: dict[str, dict[str, Any]] = {}
        for order in active + pending:
            unique.setdefault(order["orderHash"], order)

        ordered = sorted(unique.values(), key=lambda o: o.get("createdAt") or "", reverse=True)
        return ordered[:limit]

    async def get_order(self, order_hash: str) -> Optional[dict[str, Any]]:
        """Fetch one order, or None if the relayer does not know it."""
        try:
            response = await self._client.get(f"/api/orders/{order_hash}")
        except httpx.HTTPError as e:
            raise RelayerError(f"Failed to fetch order {order_hash}: {e}")
        if response.status_code == 404:
            return None
        body = response.json()
        if not body.get("success"):
            error = body.get("error") or {}
            raise RelayerError(error.get("message", "Failed to fetch order"), error)
        return body["data"]

    async def request_secret(
        self,
        order_hash: str,
        src_escrow_address: str,
        dst_escrow_address: str,
        src_chain_id: int,
        dst_chain_id: int,
    ) -> dict[str, Any]:
        """Ask the relayer to validate both escrows and disclose the secret.

        Returns:
            The relayer envelope; transport failures are folded into
            ``{success: False, error: {code: SECRET_REQUEST_FAILED, ...}}``
        """
        payload = {
            "srcEscrowAddress": src_escrow_address,
            "dstEscrowAddress": dst_escrow_address,
            "srcChainId": str(src_chain_id),
            "dstChainId": str(dst_chain_id),
        }
        try:
            response = await self._client.post(f"/api/secrets/{order_hash}", json=payload)
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to request secret for {order_hash[:10]}...: {e}")
            return {
                "success": False,
                "error": {"code": "SECRET_REQUEST_FAILED", "message": str(e)},
            }

    async def update_order_status(
        self, order_hash: str, status: str, reason: Optional[str] = None
    ) -> bool:
        """Report a status change back to the relayer."""
        payload: dict[str, Any] = {"status": status}
        if reason:
            payload["reason"] = reason[:500]
        try:
            response = await self._client.patch(f"/api/orders/{order_hash}/status", json=payload)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to update status of {order_hash[:10]}...: {e}")
            return False
        if not body.get("success"):
            logger.warning(
                f"Relayer rejected status {status} for {order_hash[:10]}...: "
                f"{(body.get('error') or {}).get('message')}"
            )
            return False
        return True
