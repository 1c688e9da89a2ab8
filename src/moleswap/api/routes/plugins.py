"""Chain plugin introspection and ad-hoc escrow validation."""

import logging

from fastapi import APIRouter, Request

from moleswap.api.app import error_response, get_registry
from moleswap.escrow.base import EscrowOrderData
from moleswap.orders.schemas import EscrowValidationBody

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/status")
async def plugin_status(request: Request):
    """Last known status of every plugin."""
    registry = await get_registry(request.app)
    return {"success": True, "data": registry.summary()}


@router.post("/health-check")
async def plugin_health_check(request: Request):
    """Probe every plugin now."""
    registry = await get_registry(request.app)
    await registry.health_check()
    summary = registry.summary()
    logger.info(f"Plugin health check: {summary['healthy']}/{summary['total']} healthy")
    return {"success": True, "data": summary}


@router.get("/chains")
async def supported_chains(request: Request):
    """Chains with a registered plugin."""
    registry = await get_registry(request.app)
    chains = [
        {
            "chainId": plugin.chain_id,
            "name": plugin.name,
            "type": plugin.chain_type,
            "status": plugin.get_status().status.value,
        }
        for plugin in registry.get_all_plugins()
    ]
    return {
        "success": True,
        "data": {
            "chains": chains,
            "total": len(chains),
            "supported": registry.get_supported_chain_ids(),
        },
    }


@router.post("/validate-escrow/{chain_id}")
async def validate_escrow(chain_id: str, body: EscrowValidationBody, request: Request):
    """Validate one escrow against order data without touching the audit trail."""
    registry = await get_registry(request.app)
    plugin = registry.get_plugin(chain_id)
    if plugin is None:
        return error_response(
            404,
            "CHAIN_NOT_SUPPORTED",
            f"No plugin found for chain {chain_id}",
            {"chainId": chain_id, "supportedChains": registry.get_supported_chain_ids()},
        )

    result = await plugin.validate_escrow(
        body.escrow_address, EscrowOrderData.from_api(body.order_data)
    )
    return {"success": True, "data": result.to_dict()}
