"""Stripe Connect transfer provider.

Transfers go from the platform balance to a connected account
(`destination_ref` is the `acct_...` id).
"""

from __future__ import annotations

import asyncio
import logging

import stripe

from payout_engine.transfers.base import (
    TransferFailure,
    TransferRequest,
    TransferResult,
)

logger = logging.getLogger(__name__)

_INSUFFICIENT_BALANCE_CODES = frozenset({"balance_insufficient", "insufficient_funds"})
_DESTINATION_NOT_READY_CODES = frozenset(
    {"account_invalid", "account_closed", "no_account", "transfers_not_allowed"}
)


class StripeTransferProvider:
    """Transfer provider backed by `stripe.Transfer.create`."""

    provider_name = "stripe"

    def __init__(self, api_key: str, currency: str = "usd"):
        if not api_key:
            raise ValueError("Stripe API key is required")
        self.api_key = api_key
        self.currency = currency

    async def transfer(self, request: TransferRequest) -> TransferResult:
        try:
            transfer = await asyncio.to_thread(
                stripe.Transfer.create,
                api_key=self.api_key,
                amount=request.amount,
                currency=request.currency or self.currency,
                destination=request.destination_ref,
                description=request.description or None,
                metadata=dict(request.metadata),
                idempotency_key=request.idempotency_key,
            )
        except stripe.StripeError as e:
            failure = _classify(e)
            logger.warning(
                "Stripe transfer failed (%s): %s",
                failure.value,
                e.user_message or str(e),
                extra={"idempotency_key": request.idempotency_key},
            )
            return TransferResult.failed(failure, e.user_message or str(e))

        return TransferResult.ok(transfer.id)


def _classify(error: stripe.StripeError) -> TransferFailure:
    code = error.code or ""
    if code in _INSUFFICIENT_BALANCE_CODES:
        return TransferFailure.INSUFFICIENT_BALANCE
    if code in _DESTINATION_NOT_READY_CODES:
        return TransferFailure.DESTINATION_NOT_READY
    return TransferFailure.ERROR
