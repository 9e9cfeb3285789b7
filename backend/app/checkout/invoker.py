"""Invocation of the external subscription activation service."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from .exceptions import CheckoutError, TransientActivationError
from .models import ActivationResult, PaymentSession, SubscriptionPlan
from .session import DEFAULT_DISPLAY_LENGTH, mask_session_id

logger = logging.getLogger(__name__)

UNKNOWN_ACTIVATION_ERROR = "Unknown error activating subscription"
ACTIVATOR_UNAVAILABLE = "Activation service not available"


class SubscriptionActivator(Protocol):
    """Remote service that grants premium entitlement for a paid session.

    Implementations must be idempotent per ``session_id``: repeating a call
    after a prior success must not extend or charge again.
    """

    async def activate_subscription(self, session_id: str, plan: SubscriptionPlan) -> None:
        ...


@dataclass
class ActivationInvoker:
    """Calls the activator and folds every failure into an :class:`ActivationResult`."""

    activator: Optional[SubscriptionActivator]
    display_length: int = DEFAULT_DISPLAY_LENGTH

    async def invoke(self, session: PaymentSession) -> ActivationResult:
        if self.activator is None:
            return ActivationResult.failure(TransientActivationError(ACTIVATOR_UNAVAILABLE))

        masked = mask_session_id(session.session_id, length=self.display_length)
        try:
            await self.activator.activate_subscription(
                session.session_id, session.plan.subscription_plan
            )
        except CheckoutError as exc:
            logger.warning(
                "Activation rejected session=%s detail=%s",
                masked,
                exc.detail,
                extra={"session": masked, "error_kind": exc.kind.value},
            )
            return ActivationResult.failure(exc)
        except Exception as exc:
            logger.exception("Unexpected activation error session=%s", masked, extra={"session": masked})
            return ActivationResult.failure(TransientActivationError(str(exc) or UNKNOWN_ACTIVATION_ERROR))

        logger.info("Activation succeeded session=%s plan=%s", masked, session.plan.value, extra={"session": masked})
        return ActivationResult.success()


__all__ = [
    "ACTIVATOR_UNAVAILABLE",
    "ActivationInvoker",
    "SubscriptionActivator",
    "UNKNOWN_ACTIVATION_ERROR",
]
