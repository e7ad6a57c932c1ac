"""
Payment provider gateway.

StripePaymentGateway creates PaymentIntents whose metadata carries the
project and client ids; the provider echoes that metadata back in webhook
notifications, which is how PaymentWebhookHandler finds the project.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from uuid import UUID

import stripe

from engagement_kernel.exceptions import ExternalFailureError
from engagement_kernel.logging_config import get_logger

logger = get_logger("payments.gateway")


@dataclass(frozen=True)
class PaymentIntentHandle:
    intent_id: str
    client_secret: str


class PaymentGateway(ABC):
    @abstractmethod
    def create_intent(
        self,
        project_id: UUID,
        client_id: UUID,
        amount_minor: int,
        currency: str,
    ) -> PaymentIntentHandle:
        """Raises ExternalFailureError when the provider call fails."""


class StripePaymentGateway(PaymentGateway):
    """PaymentIntent creation through the ``stripe`` library."""

    def __init__(self, api_key: str, max_network_retries: int = 2):
        self._api_key = api_key
        stripe.max_network_retries = max_network_retries

    def create_intent(
        self,
        project_id: UUID,
        client_id: UUID,
        amount_minor: int,
        currency: str,
    ) -> PaymentIntentHandle:
        if not self._api_key:
            raise ExternalFailureError("payment_provider", "API key is not configured")
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_minor,
                currency=currency.lower(),
                metadata={"projectId": str(project_id), "clientId": str(client_id)},
                idempotency_key=f"project-{project_id}-{amount_minor}-{currency.lower()}",
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            logger.error(
                "payment_intent_failed",
                extra={"project_id": str(project_id), "error": str(exc)},
                exc_info=True,
            )
            raise ExternalFailureError("payment_provider", str(exc)) from exc

        logger.info(
            "payment_intent_created",
            extra={
                "project_id": str(project_id),
                "intent_id": intent.id,
                "amount_minor": amount_minor,
                "currency": currency,
            },
        )
        return PaymentIntentHandle(intent_id=intent.id, client_secret=intent.client_secret)
