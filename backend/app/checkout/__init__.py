"""Checkout reconciliation: turns a payment return redirect into one activation."""

from .config import CheckoutConfig, load_checkout_config
from .exceptions import (
    ActivationTimeoutError,
    CheckoutError,
    CheckoutErrorKind,
    SessionValidationError,
    TransientActivationError,
)
from .flow import CheckoutNotifier, EntitlementInvalidator, ReconciliationFlow
from .guard import ActivationGuard
from .invoker import ActivationInvoker, SubscriptionActivator
from .models import (
    ActivationAttempt,
    ActivationResult,
    AttemptOutcome,
    PaymentSession,
    PlanSelector,
    ReconciliationPhase,
    ReconciliationState,
    SubscriptionPlan,
)
from .presenter import ReconciliationView, present
from .session import extract_payment_session, mask_session_id
from .timeout import TimeoutSupervisor

__all__ = [
    "ActivationAttempt",
    "ActivationGuard",
    "ActivationInvoker",
    "ActivationResult",
    "ActivationTimeoutError",
    "AttemptOutcome",
    "CheckoutConfig",
    "CheckoutError",
    "CheckoutErrorKind",
    "CheckoutNotifier",
    "EntitlementInvalidator",
    "PaymentSession",
    "PlanSelector",
    "ReconciliationFlow",
    "ReconciliationPhase",
    "ReconciliationState",
    "ReconciliationView",
    "SessionValidationError",
    "SubscriptionActivator",
    "SubscriptionPlan",
    "TimeoutSupervisor",
    "TransientActivationError",
    "extract_payment_session",
    "load_checkout_config",
    "mask_session_id",
    "present",
]
