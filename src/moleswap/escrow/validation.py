"""Escrow validation service: gate for secret disclosure."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from moleswap.errors import ChainNotSupportedError
from moleswap.escrow.base import EscrowOrderData, ValidationResult
from moleswap.escrow.registry import PluginRegistry
from moleswap.orders.models import EscrowValidation, Order, ValidationType
from moleswap.orders.repository import EscrowValidationRepository

logger = logging.getLogger(__name__)


@dataclass
class EscrowValidationRequest:
    """Both escrows of one order."""

    order_hash: str
    src_escrow_address: str
    dst_escrow_address: str
    src_chain_id: str
    dst_chain_id: str


def order_data_for(order: Order, side: ValidationType) -> EscrowOrderData:
    """What each escrow should hold: maker funds on source, taker funds on destination."""
    data = EscrowOrderData(
        maker=order.maker,
        maker_asset=order.maker_token,
        taker_asset=order.taker_token,
        making_amount=order.maker_amount,
        taking_amount=order.taker_amount,
        hashlock=order.hashlock,
        order_hash=order.order_hash,
    )
    if side == ValidationType.SOURCE:
        data.expected_amount = order.maker_amount
        data.expected_asset = order.maker_token
    else:
        data.expected_amount = order.taker_amount
        data.expected_asset = order.taker_token
    return data


def record_to_result(record: EscrowValidation) -> ValidationResult:
    details = record.validation_details or {}
    balance = details.get("balance")
    return ValidationResult(
        valid=record.is_valid,
        chain_id=record.chain,
        escrow_address=record.escrow_address,
        balance=int(balance) if balance is not None else None,
        error=details.get("error"),
        details=details,
    )


class EscrowValidationService:
    """Validates both escrows of an order and keeps the audit trail."""

    def __init__(
        self,
        registry: PluginRegistry,
        session: AsyncSession,
        reuse_seconds: int = 300,
    ):
        self.registry = registry
        self.repo = EscrowValidationRepository(session)
        self.reuse_window = timedelta(seconds=reuse_seconds)

    async def validate_escrow(
        self, chain_id: str, escrow_address: str, order_data: EscrowOrderData
    ) -> ValidationResult:
        """Validate one escrow; an unsupported chain yields an invalid result."""
        try:
            plugin = self.registry.get_plugin_or_raise(chain_id)
        except ChainNotSupportedError as e:
            logger.warning(f"Escrow validation on unsupported chain {chain_id}")
            return ValidationResult(
                valid=False,
                chain_id=str(chain_id),
                escrow_address=escrow_address,
                error=e.message,
                details={"code": e.code},
            )
        return await plugin.validate_escrow(escrow_address, order_data)

    async def check_existing_validations(
        self, request: EscrowValidationRequest
    ) -> Optional[dict[str, Any]]:
        """Reuse recent valid records for both sides, if any."""
        if self.reuse_window.total_seconds() <= 0:
            return None

        src = await self.repo.get_latest(
            request.order_hash,
            ValidationType.SOURCE,
            escrow_address=request.src_escrow_address,
            max_age=self.reuse_window,
        )
        dst = await self.repo.get_latest(
            request.order_hash,
            ValidationType.DESTINATION,
            escrow_address=request.dst_escrow_address,
            max_age=self.reuse_window,
        )
        if src is None or dst is None or not (src.is_valid and dst.is_valid):
            return None
        if src.chain != str(request.src_chain_id) or dst.chain != str(request.dst_chain_id):
            return None

        logger.info(f"Reusing escrow validations for {request.order_hash[:10]}...")
        return {
            "srcEscrow": record_to_result(src).to_dict(),
            "dstEscrow": record_to_result(dst).to_dict(),
            "allValid": True,
            "reused": True,
        }

    async def validate_escrows(
        self, order: Order, request: EscrowValidationRequest
    ) -> dict[str, Any]:
        """Validate both escrows and persist one record per side.

        Returns:
            ``{srcEscrow, dstEscrow, allValid}`` with each side as a
            ValidationResult dict
        """
        existing = await self.check_existing_validations(request)
        if existing is not None:
            return existing

        src = await self.validate_escrow(
            request.src_chain_id,
            request.src_escrow_address,
            order_data_for(order, ValidationType.SOURCE),
        )
        dst = await self.validate_escrow(
            request.dst_chain_id,
            request.dst_escrow_address,
            order_data_for(order, ValidationType.DESTINATION),
        )

        for side, result in ((ValidationType.SOURCE, src), (ValidationType.DESTINATION, dst)):
            details = dict(result.details)
            if result.balance is not None:
                details["balance"] = str(result.balance)
            if result.error:
                details["error"] = result.error
            await self.repo.record(
                order_hash=request.order_hash,
                chain=result.chain_id,
                escrow_address=result.escrow_address,
                validation_type=side,
                is_valid=result.valid,
                details=details,
            )

        all_valid = src.valid and dst.valid
        logger.info(
            f"Escrow validation for {request.order_hash[:10]}...: "
            f"src={src.valid} dst={dst.valid}"
        )
        return {"srcEscrow": src.to_dict(), "dstEscrow": dst.to_dict(), "allValid": all_valid}

    async def get_validation_history(self, order_hash: str) -> list[dict[str, Any]]:
        records = await self.repo.get_history(order_hash)
        return [
            {
                "id": r.id,
                "orderHash": r.order_hash,
                "chain": r.chain,
                "escrowAddress": r.escrow_address,
                "validationType": r.validation_type,
                "isValid": r.is_valid,
                "validationDetails": r.validation_details,
                "validatedAt": r.validated_at.isoformat() if r.validated_at else None,
            }
            for r in records
        ]
