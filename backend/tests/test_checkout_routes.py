from __future__ import annotations

import pytest
from fastapi import HTTPException

from backend.app.checkout import CheckoutConfig, ReconciliationPhase
from backend.app.routes import checkout as checkout_routes
from backend.app.services.checkout import (
    CheckoutFlowRegistry,
    LocalSandboxSubscriptionActivator,
    LoggingCheckoutNotifier,
)


@pytest.fixture
def registry(monkeypatch):
    registry = CheckoutFlowRegistry(
        config=CheckoutConfig(activation_timeout_seconds=0.5, auto_retry_delay_seconds=0.05),
        activator=LocalSandboxSubscriptionActivator(),
        notifier=LoggingCheckoutNotifier(),
    )
    monkeypatch.setattr(checkout_routes, "get_checkout_registry", lambda: registry)
    return registry


@pytest.mark.asyncio
async def test_open_checkout_return_starts_activation(registry):
    response = await checkout_routes.open_checkout_return(session_id="cs_test_123", plan="monthly")

    assert response.created is True
    assert response.view.phase == ReconciliationPhase.PROCESSING
    assert response.view.display_session_id == "cs_test_123"

    flow = registry.get(response.flow_id)
    await flow.wait_until_settled(timeout=1)

    status = await checkout_routes.get_flow_status(response.flow_id)
    assert status.view.phase == ReconciliationPhase.SUCCESS
    assert status.view.can_continue is True

    destination = await checkout_routes.continue_flow(response.flow_id)
    assert destination.redirect_url == "/app/vault"
    assert destination.model_dump(by_alias=True) == {"redirectUrl": "/app/vault"}


@pytest.mark.asyncio
async def test_duplicate_return_reuses_running_flow(registry):
    first = await checkout_routes.open_checkout_return(session_id="cs_test_123", plan="monthly")
    second = await checkout_routes.open_checkout_return(session_id="cs_test_123", plan="monthly")

    assert second.flow_id == first.flow_id
    assert second.created is False

    await registry.get(first.flow_id).wait_until_settled(timeout=1)
    assert registry.activator.calls == 1


@pytest.mark.asyncio
async def test_open_checkout_return_with_placeholder_reports_error(registry):
    response = await checkout_routes.open_checkout_return(session_id="{CHECKOUT_SESSION_ID}", plan="monthly")

    assert response.flow_id is None
    assert response.view.phase == ReconciliationPhase.ERROR
    assert response.view.last_error_detail == "invalid session id"
    assert response.view.can_retry is False
    assert response.model_dump(by_alias=True)["flowId"] is None
    assert registry.activator.calls == 0
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_continue_before_success_conflicts(registry):
    registry.activator = None
    response = await checkout_routes.open_checkout_return(session_id="cs_test_123", plan="monthly")

    with pytest.raises(HTTPException) as excinfo:
        await checkout_routes.continue_flow(response.flow_id)
    assert excinfo.value.status_code == 409

    await registry.get(response.flow_id).wait_until_settled(timeout=1)
    retry = await checkout_routes.retry_flow(response.flow_id)
    assert retry.accepted is True
    assert retry.view.is_retrying is True
    await registry.get(response.flow_id).wait_until_settled(timeout=1)


@pytest.mark.asyncio
async def test_unknown_flow_returns_not_found(registry):
    for call in (
        checkout_routes.get_flow_status,
        checkout_routes.retry_flow,
        checkout_routes.continue_flow,
        checkout_routes.close_flow,
    ):
        with pytest.raises(HTTPException) as excinfo:
            await call("missing")
        assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_close_flow_removes_it(registry):
    response = await checkout_routes.open_checkout_return(session_id="cs_test_123", plan="annual")

    result = await checkout_routes.close_flow(response.flow_id)

    assert result.status_code == 204
    assert len(registry) == 0
