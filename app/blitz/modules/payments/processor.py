"""
Payment processor seam.

Only a mock exists: it hands back deterministic-looking intent ids without talking
to any external service. A real processor would implement the same
`create_intent` signature.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str
    amount: int  # minor units (cents)
    currency: str
    status: str = "requires_payment_method"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class MockPaymentProcessor:
    currency: str = "usd"

    def create_intent(self, *, amount_cents: int, metadata: dict[str, Any] | None = None) -> PaymentIntent:
        if amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        stamp = int(time.time() * 1000)
        intent_id = f"pi_mock_{stamp}"
        return PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_mock",
            amount=amount_cents,
            currency=self.currency,
            metadata=dict(metadata or {}),
        )
