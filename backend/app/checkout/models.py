"""Domain models for checkout reconciliation."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import CheckoutError, CheckoutErrorKind


class SubscriptionPlan(str, Enum):
    """Plans understood by the subscription activation service."""

    PREMIUM_MONTHLY = "premium_monthly"
    PREMIUM_ANNUAL = "premium_annual"


class PlanSelector(str, Enum):
    """Plan keys accepted on the checkout return redirect."""

    MONTHLY = "monthly"
    ANNUAL = "annual"

    @property
    def subscription_plan(self) -> SubscriptionPlan:
        return _PLAN_MAPPING[self]


_PLAN_MAPPING = {
    PlanSelector.MONTHLY: SubscriptionPlan.PREMIUM_MONTHLY,
    PlanSelector.ANNUAL: SubscriptionPlan.PREMIUM_ANNUAL,
}


class PaymentSession(BaseModel):
    """Validated checkout session returned by the payment provider."""

    session_id: str = Field(min_length=1, description="Opaque correlation token from the provider")
    plan: PlanSelector

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class AttemptOutcome(str, Enum):
    """Resolution of a single activation attempt."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


class ActivationAttempt(BaseModel):
    """One call to the activation service, tagged with its generation."""

    generation: int = Field(ge=1)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    deadline: datetime
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    failure_reason: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_pending(self) -> bool:
        return self.outcome == AttemptOutcome.PENDING


class ReconciliationPhase(str, Enum):
    """Lifecycle phase of a reconciliation flow."""

    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class ReconciliationState(BaseModel):
    """Snapshot of a reconciliation flow, replaced on every transition."""

    phase: ReconciliationPhase = ReconciliationPhase.IDLE
    auto_retry_consumed: bool = False
    last_error_detail: Optional[str] = None
    last_error_kind: Optional[CheckoutErrorKind] = None
    display_session_id: str = "N/A"
    is_retrying: bool = False
    auto_retry_pending: bool = False
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_terminal(self) -> bool:
        """``True`` once the flow needs no further automatic work."""
        return self.phase in {ReconciliationPhase.SUCCESS, ReconciliationPhase.ERROR}


@dataclass(frozen=True)
class ActivationResult:
    """Normalized outcome of an activation call."""

    error: Optional[CheckoutError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls) -> "ActivationResult":
        return cls()

    @classmethod
    def failure(cls, error: CheckoutError) -> "ActivationResult":
        return cls(error=error)


__all__ = [
    "ActivationAttempt",
    "ActivationResult",
    "AttemptOutcome",
    "PaymentSession",
    "PlanSelector",
    "ReconciliationPhase",
    "ReconciliationState",
    "SubscriptionPlan",
]
