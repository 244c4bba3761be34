"""Base protocol and types for outbound transfer providers.

All provider adapters must implement the TransferProvider protocol.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol


class TransferFailure(str, Enum):
    """Why a transfer was not made."""

    INSUFFICIENT_BALANCE = "insufficient_balance"
    DESTINATION_NOT_READY = "destination_not_ready"
    ERROR = "error"


@dataclass(frozen=True)
class TransferRequest:
    """One outbound transfer to a payee's payout destination."""

    amount: int  # minor units
    destination_ref: str
    idempotency_key: str
    currency: str = "usd"
    description: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TransferResult:
    """Result of a transfer attempt.

    `reference` is set on success; `failure` and `message` otherwise.
    """

    success: bool
    reference: str | None = None
    failure: TransferFailure | None = None
    message: str = ""

    @classmethod
    def ok(cls, reference: str) -> TransferResult:
        return cls(success=True, reference=reference)

    @classmethod
    def failed(cls, failure: TransferFailure, message: str) -> TransferResult:
        return cls(success=False, failure=failure, message=message)


class TransferProvider(Protocol):
    """Protocol for outbound transfer adapters.

    Implementations must not raise for business failures (declines,
    missing balance); those come back as a failed TransferResult. A
    repeated call with the same idempotency key must not move money twice.
    """

    provider_name: str

    async def transfer(self, request: TransferRequest) -> TransferResult:
        """Move `request.amount` to `request.destination_ref`."""
        ...
