"""Payment processor seam and the in-process sandbox backend."""

from __future__ import annotations

import hashlib
import logging
from decimal import Decimal
from functools import lru_cache
from typing import Protocol

from moveup.core.config import get_settings
from moveup.shared.exceptions import ExternalFailureException

logger = logging.getLogger(__name__)


class PaymentDeclined(Exception):
    """Processor refused the charge."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class PaymentProcessor(Protocol):
    """Fallible, idempotent-by-key processor calls."""

    async def authorize(self, amount: Decimal, currency: str, payer_token: str, idempotency_key: str) -> str: ...

    async def capture(self, external_ref: str, idempotency_key: str) -> str: ...

    async def transfer(self, destination_account: str, amount: Decimal, currency: str, idempotency_key: str) -> str: ...

    async def refund(self, external_ref: str, idempotency_key: str) -> str: ...


class SandboxPaymentProcessor:
    """Deterministic processor for development and tests.

    Payer tokens starting with ``decline_`` are declined and tokens starting
    with ``error_`` fail as a processor outage. References are derived from
    the idempotency key, so a repeated call returns the same reference.
    """

    def __init__(self) -> None:
        self._authorizations: dict[str, Decimal] = {}

    @staticmethod
    def _reference(prefix: str, idempotency_key: str) -> str:
        digest = hashlib.sha256(idempotency_key.encode("utf-8")).hexdigest()[:24]
        return f"{prefix}_{digest}"

    async def authorize(self, amount: Decimal, currency: str, payer_token: str, idempotency_key: str) -> str:
        if payer_token.startswith("decline_"):
            raise PaymentDeclined(payer_token.removeprefix("decline_") or "card_declined")
        if payer_token.startswith("error_"):
            raise ExternalFailureException("Sandbox processor unavailable")
        if amount <= 0:
            raise PaymentDeclined("invalid_amount")

        reference = self._reference("auth", idempotency_key)
        self._authorizations[reference] = amount
        logger.debug("Sandbox authorized %s %s as %s", amount, currency, reference)
        return reference

    async def capture(self, external_ref: str, idempotency_key: str) -> str:
        return self._reference("cap", idempotency_key)

    async def transfer(self, destination_account: str, amount: Decimal, currency: str, idempotency_key: str) -> str:
        if not destination_account:
            raise ExternalFailureException("Destination account is required")
        return self._reference("tr", idempotency_key)

    async def refund(self, external_ref: str, idempotency_key: str) -> str:
        self._authorizations.pop(external_ref, None)
        return self._reference("re", idempotency_key)


def _build_payment_processor(backend: str) -> PaymentProcessor:
    if backend == "sandbox":
        return SandboxPaymentProcessor()
    raise ValueError(f"Unsupported payment processor backend: {backend}")


@lru_cache
def get_payment_processor() -> PaymentProcessor:
    """Return shared payment processor for the configured backend."""
    return _build_payment_processor(get_settings().payment_processor_backend)
