"""In-memory transfer provider for local development and testing."""

from __future__ import annotations

import uuid
from typing import Any

from payout_engine.transfers.base import (
    TransferFailure,
    TransferRequest,
    TransferResult,
)


class StubTransferProvider:
    """Stub provider that records transfers in memory.

    Honors idempotency keys: a repeated key returns the original result
    without recording a second transfer. Failures can be scripted per
    destination with `fail_destination`, or for every call with
    `fail_all`.
    """

    provider_name = "stub"

    def __init__(self) -> None:
        self.transfers: list[TransferRequest] = []
        self._by_key: dict[str, TransferResult] = {}
        self._failing_destinations: dict[str, tuple[TransferFailure, str]] = {}
        self._fail_all: tuple[TransferFailure, str] | None = None

    async def transfer(self, request: TransferRequest) -> TransferResult:
        if request.idempotency_key in self._by_key:
            return self._by_key[request.idempotency_key]

        if request.amount <= 0:
            return TransferResult.failed(TransferFailure.ERROR, "Amount must be positive")

        failure = self._fail_all or self._failing_destinations.get(request.destination_ref)
        if failure is not None:
            result = TransferResult.failed(*failure)
        else:
            result = TransferResult.ok(f"tr_stub_{uuid.uuid4().hex[:16]}")
            self.transfers.append(request)

        self._by_key[request.idempotency_key] = result
        return result

    def fail_destination(
        self,
        destination_ref: str,
        failure: TransferFailure = TransferFailure.ERROR,
        message: str = "Simulated transfer failure",
    ) -> None:
        """Make every transfer to `destination_ref` fail (for testing)."""
        self._failing_destinations[destination_ref] = (failure, message)

    def fail_all(
        self,
        failure: TransferFailure = TransferFailure.INSUFFICIENT_BALANCE,
        message: str = "Insufficient platform balance",
    ) -> None:
        """Make every transfer fail (for testing)."""
        self._fail_all = (failure, message)

    def reset_failures(self) -> None:
        self._failing_destinations.clear()
        self._fail_all = None

    @property
    def total_transferred(self) -> int:
        return sum(t.amount for t in self.transfers)

    def transfers_to(self, destination_ref: str) -> list[TransferRequest]:
        return [t for t in self.transfers if t.destination_ref == destination_ref]

    def summary(self) -> dict[str, Any]:
        return {
            "count": len(self.transfers),
            "total": self.total_transferred,
        }
