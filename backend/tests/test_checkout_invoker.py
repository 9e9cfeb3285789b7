from __future__ import annotations

import asyncio
import logging

import pytest

from backend.app.checkout import (
    ActivationGuard,
    ActivationInvoker,
    ActivationResult,
    CheckoutErrorKind,
    PaymentSession,
    PlanSelector,
    SubscriptionPlan,
    TimeoutSupervisor,
    TransientActivationError,
)
from backend.app.checkout.invoker import ACTIVATOR_UNAVAILABLE, UNKNOWN_ACTIVATION_ERROR


SESSION = PaymentSession(session_id="cs_test_123", plan=PlanSelector.ANNUAL)


class RecordingActivator:
    def __init__(self, error=None) -> None:
        self.error = error
        self.calls: list[tuple[str, SubscriptionPlan]] = []

    async def activate_subscription(self, session_id: str, plan: SubscriptionPlan) -> None:
        self.calls.append((session_id, plan))
        if self.error is not None:
            raise self.error


@pytest.mark.asyncio
async def test_invoke_passes_mapped_plan_to_activator():
    activator = RecordingActivator()

    result = await ActivationInvoker(activator).invoke(SESSION)

    assert result.ok
    assert activator.calls == [("cs_test_123", SubscriptionPlan.PREMIUM_ANNUAL)]


@pytest.mark.asyncio
async def test_invoke_normalizes_unexpected_exceptions():
    result = await ActivationInvoker(RecordingActivator(ConnectionError("connection reset"))).invoke(SESSION)

    assert not result.ok
    assert isinstance(result.error, TransientActivationError)
    assert result.error.detail == "connection reset"


@pytest.mark.asyncio
async def test_invoke_uses_fallback_detail_for_blank_errors():
    result = await ActivationInvoker(RecordingActivator(RuntimeError())).invoke(SESSION)

    assert result.error.detail == UNKNOWN_ACTIVATION_ERROR


@pytest.mark.asyncio
async def test_invoke_keeps_collaborator_reported_errors():
    error = TransientActivationError("Stripe session not paid")

    result = await ActivationInvoker(RecordingActivator(error)).invoke(SESSION)

    assert result.error is error
    assert result.error.kind == CheckoutErrorKind.TRANSIENT


@pytest.mark.asyncio
async def test_invoke_without_activator_fails():
    result = await ActivationInvoker(None).invoke(SESSION)

    assert result.error.detail == ACTIVATOR_UNAVAILABLE


@pytest.mark.asyncio
async def test_supervisor_returns_result_resolved_before_deadline():
    guard = ActivationGuard()
    generation = guard.begin()
    supervisor = TimeoutSupervisor(guard, timeout_seconds=0.5)

    async def quick() -> ActivationResult:
        return ActivationResult.success()

    result = await supervisor.run(generation, quick())

    assert result.ok
    assert guard.is_current(generation)
    assert supervisor.orphaned_calls == 0


@pytest.mark.asyncio
async def test_supervisor_times_out_and_hands_late_result_to_callback():
    guard = ActivationGuard()
    generation = guard.begin()
    supervisor = TimeoutSupervisor(guard, timeout_seconds=0.05)
    late: list[tuple[int, ActivationResult]] = []

    async def slow() -> ActivationResult:
        await asyncio.sleep(0.15)
        return ActivationResult.success()

    result = await supervisor.run(
        generation, slow(), on_late_result=lambda gen, res: late.append((gen, res))
    )

    assert result.error is not None
    assert result.error.kind == CheckoutErrorKind.TIMEOUT
    assert result.error.detail == "Timeout"
    assert not guard.in_flight
    assert not guard.is_current(generation)
    assert supervisor.orphaned_calls == 1

    await asyncio.sleep(0.2)

    assert late == [(generation, ActivationResult.success())]
    assert supervisor.orphaned_calls == 0


def test_supervisor_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        TimeoutSupervisor(ActivationGuard(), timeout_seconds=0)


@pytest.mark.asyncio
async def test_invoke_masks_session_id_in_logs(caplog):
    caplog.set_level(logging.DEBUG)
    session = PaymentSession(session_id="cs_live_a1b2c3d4e5f6g7h8i9", plan=PlanSelector.MONTHLY)

    await ActivationInvoker(RecordingActivator(), display_length=8).invoke(session)
    await ActivationInvoker(RecordingActivator(RuntimeError("boom")), display_length=8).invoke(session)

    assert "cs_live_..." in caplog.text
    assert session.session_id not in caplog.text
    assert "cs_live_a" not in caplog.text


@pytest.mark.asyncio
async def test_supervisor_leaves_call_running_when_waiter_is_cancelled():
    guard = ActivationGuard()
    generation = guard.begin()
    supervisor = TimeoutSupervisor(guard, timeout_seconds=1)
    late: list[tuple[int, ActivationResult]] = []
    finished = asyncio.Event()

    async def slow() -> ActivationResult:
        await asyncio.sleep(0.05)
        finished.set()
        return ActivationResult.success()

    waiter = asyncio.ensure_future(
        supervisor.run(generation, slow(), on_late_result=lambda gen, res: late.append((gen, res)))
    )
    await asyncio.sleep(0.01)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    assert supervisor.orphaned_calls == 1

    await asyncio.wait_for(finished.wait(), 1)
    await asyncio.sleep(0.05)

    assert late == [(generation, ActivationResult.success())]
    assert supervisor.orphaned_calls == 0
