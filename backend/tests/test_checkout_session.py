"""Tests for parsing checkout return parameters."""
from __future__ import annotations

import pytest
from hypothesis import given, strategies as st

from backend.app.checkout import (
    CheckoutErrorKind,
    PaymentSession,
    PlanSelector,
    SessionValidationError,
    SubscriptionPlan,
    extract_payment_session,
    mask_session_id,
)
from backend.app.checkout.session import DEFAULT_SESSION_PLACEHOLDER


def test_extract_payment_session_accepts_valid_parameters():
    session = extract_payment_session({"session_id": "cs_test_123", "plan": "monthly"})

    assert session == PaymentSession(session_id="cs_test_123", plan=PlanSelector.MONTHLY)
    assert session.plan.subscription_plan == SubscriptionPlan.PREMIUM_MONTHLY


def test_annual_plan_maps_to_premium_annual():
    session = extract_payment_session({"session_id": "cs_test_456", "plan": "annual"})

    assert session.plan.subscription_plan == SubscriptionPlan.PREMIUM_ANNUAL


@pytest.mark.parametrize(
    "params",
    [
        {"plan": "monthly"},
        {"session_id": "", "plan": "monthly"},
        {"session_id": "   ", "plan": "monthly"},
        {"session_id": DEFAULT_SESSION_PLACEHOLDER, "plan": "monthly"},
    ],
)
def test_missing_or_placeholder_session_id_is_rejected(params):
    with pytest.raises(SessionValidationError) as excinfo:
        extract_payment_session(params)

    assert excinfo.value.detail == "invalid session id"
    assert excinfo.value.kind == CheckoutErrorKind.VALIDATION
    assert excinfo.value.retryable is False


def test_custom_placeholder_is_respected():
    with pytest.raises(SessionValidationError):
        extract_payment_session({"session_id": "<SESSION>", "plan": "annual"}, placeholder="<SESSION>")

    session = extract_payment_session(
        {"session_id": DEFAULT_SESSION_PLACEHOLDER, "plan": "annual"}, placeholder="<SESSION>"
    )
    assert session.session_id == DEFAULT_SESSION_PLACEHOLDER


@pytest.mark.parametrize("plan", ["unknown", "", "Monthly", "premium_monthly"])
def test_unrecognized_plan_is_rejected(plan):
    with pytest.raises(SessionValidationError) as excinfo:
        extract_payment_session({"session_id": "cs_test_789", "plan": plan})

    assert excinfo.value.detail == "unrecognized plan"
    assert excinfo.value.retryable is False


def test_session_id_is_checked_before_plan():
    with pytest.raises(SessionValidationError) as excinfo:
        extract_payment_session({"session_id": DEFAULT_SESSION_PLACEHOLDER, "plan": "unknown"})

    assert excinfo.value.detail == "invalid session id"


@given(plan=st.text().filter(lambda value: value not in {"monthly", "annual"}))
def test_any_plan_outside_the_catalog_is_rejected(plan):
    with pytest.raises(SessionValidationError):
        extract_payment_session({"session_id": "cs_live_abc", "plan": plan})


@given(
    session_id=st.text(min_size=1).filter(lambda value: value.strip() and value != DEFAULT_SESSION_PLACEHOLDER),
    plan=st.sampled_from(["monthly", "annual"]),
)
def test_any_non_blank_session_id_is_accepted(session_id, plan):
    session = extract_payment_session({"session_id": session_id, "plan": plan})

    assert session.session_id == session_id
    assert session.plan == PlanSelector(plan)


def test_payment_session_is_immutable():
    session = extract_payment_session({"session_id": "cs_test_123", "plan": "monthly"})

    with pytest.raises(Exception):
        session.session_id = "cs_other"  # type: ignore[misc]


def test_mask_session_id_truncates_long_tokens():
    raw = "cs_live_a1b2c3d4e5f6g7h8i9j0"

    assert mask_session_id(raw) == "cs_live_a1b2c3d4e5f6..."
    assert mask_session_id("cs_test_123") == "cs_test_123"
    assert mask_session_id("") == "N/A"
    assert mask_session_id(None) == "N/A"
    assert mask_session_id(raw, length=8) == "cs_live_..."


@given(raw=st.text(min_size=21))
def test_masked_session_id_never_reveals_the_full_token(raw):
    masked = mask_session_id(raw)

    assert masked != raw
    assert masked == f"{raw[:20]}..."
