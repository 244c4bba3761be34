"""Outbound transfer providers."""

from payout_engine.config import Settings
from payout_engine.transfers.base import (
    TransferFailure,
    TransferProvider,
    TransferRequest,
    TransferResult,
)
from payout_engine.transfers.stripe_provider import StripeTransferProvider
from payout_engine.transfers.stub import StubTransferProvider


def build_transfer_provider(settings: Settings) -> TransferProvider:
    """Build the provider selected by TRANSFER_PROVIDER."""
    if settings.transfer_provider == "stripe":
        return StripeTransferProvider(settings.stripe_secret_key or "", settings.currency)
    return StubTransferProvider()


__all__ = [
    "TransferFailure",
    "TransferProvider",
    "TransferRequest",
    "TransferResult",
    "StripeTransferProvider",
    "StubTransferProvider",
    "build_transfer_provider",
]
