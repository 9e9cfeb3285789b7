"""Application wiring for checkout reconciliation."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Dict, Iterable, Mapping, Optional, Tuple
from uuid import uuid4

import httpx

from ..checkout import (
    CheckoutConfig,
    CheckoutNotifier,
    EntitlementInvalidator,
    ReconciliationFlow,
    SubscriptionActivator,
    SubscriptionPlan,
    TransientActivationError,
    load_checkout_config,
)
from ..checkout.config import HTTP_ACTIVATOR
from ..checkout.session import SESSION_ID_PARAM


logger = logging.getLogger("checkout")


class LoggingCheckoutNotifier(CheckoutNotifier):
    """Notifier that records checkout notifications to the application logger."""

    def notify_success(self, message: str) -> None:
        logger.info("Checkout notification: %s", message)

    def notify_error(self, message: str) -> None:
        logger.warning("Checkout notification: %s", message)


class LoggingEntitlementInvalidator(EntitlementInvalidator):
    """Placeholder invalidator that emits log statements until cache hooks exist."""

    def invalidate(self, tags: Iterable[str]) -> None:
        logger.debug("Invalidate subscription views %s", sorted(tags))


class LocalSandboxSubscriptionActivator(SubscriptionActivator):
    """In-memory activator for local development and tests.

    Activation is idempotent per session id: a repeated call for a session that
    was already activated leaves the expiry untouched.
    """

    PERIODS = {
        SubscriptionPlan.PREMIUM_MONTHLY: timedelta(days=30),
        SubscriptionPlan.PREMIUM_ANNUAL: timedelta(days=365),
    }

    def __init__(self) -> None:
        self.activations: Dict[str, Tuple[SubscriptionPlan, datetime]] = {}
        self.calls = 0

    async def activate_subscription(self, session_id: str, plan: SubscriptionPlan) -> None:
        self.calls += 1
        if session_id in self.activations:
            return
        expires_at = datetime.now(timezone.utc) + self.PERIODS[plan]
        self.activations[session_id] = (plan, expires_at)


class HttpSubscriptionActivator(SubscriptionActivator):
    """Activator calling a remote subscription service over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url must be provided")
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def activate_subscription(self, session_id: str, plan: SubscriptionPlan) -> None:
        url = f"{self.base_url}/subscriptions/activate"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json={"sessionId": session_id, "plan": plan.value},
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            raise TransientActivationError(
                f"Activation service unreachable: {type(exc).__name__}"
            ) from exc

        if response.is_success:
            return
        raise TransientActivationError(_error_detail(response))


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message")
        if isinstance(detail, str) and detail:
            return detail
    return f"Activation service returned {response.status_code} {response.reason_phrase}".strip()


class CheckoutFlowRegistry:
    """Keeps live reconciliation flows for the lifetime of the process.

    A second return redirect for the same session id resolves to the flow
    already handling it instead of starting a competing one; a redirect for a
    session whose flow already settled starts a fresh flow. Redirects that fail
    validation are never stored. Settled flows are evicted after
    ``flow_ttl_seconds`` and the registry never holds more than ``max_flows``.
    """

    def __init__(
        self,
        *,
        config: CheckoutConfig,
        activator: Optional[SubscriptionActivator],
        notifier: CheckoutNotifier,
        invalidator: Optional[EntitlementInvalidator] = None,
    ) -> None:
        self.config = config
        self.activator = activator
        self.notifier = notifier
        self.invalidator = invalidator
        self._flows: Dict[str, ReconciliationFlow] = {}
        self._by_session: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._flows)

    def open(self, params: Mapping[str, str]) -> Tuple[Optional[str], ReconciliationFlow, bool]:
        """Return ``(flow_id, flow, created)`` for a checkout return redirect.

        ``flow_id`` is ``None`` for a redirect that failed validation; such a
        flow is already in ``error`` and is not kept.
        """

        self._evict_expired()

        raw_session_id = params.get(SESSION_ID_PARAM) or ""
        existing_id = self._by_session.get(raw_session_id) if raw_session_id else None
        if existing_id is not None:
            existing = self._flows[existing_id]
            if not existing.state.is_terminal:
                return existing_id, existing, False
            self._remove(existing_id, reason="superseded")

        flow = ReconciliationFlow.from_redirect(
            params,
            activator=self.activator,
            notifier=self.notifier,
            config=self.config,
            invalidator=self.invalidator,
        )
        if flow.session is None:
            return None, flow, True

        while len(self._flows) >= self.config.max_flows:
            self._remove(self._eviction_candidate(), reason="capacity")

        flow_id = uuid4().hex
        self._flows[flow_id] = flow
        self._by_session[flow.session.session_id] = flow_id
        logger.info(
            "Opened checkout flow %s session=%s",
            flow_id,
            flow.state.display_session_id,
            extra={"session": flow.state.display_session_id},
        )
        return flow_id, flow, True

    def get(self, flow_id: str) -> ReconciliationFlow:
        flow = self._flows.get(flow_id)
        if flow is None:
            raise LookupError("Unknown checkout flow")
        return flow

    def close(self, flow_id: str) -> None:
        if flow_id not in self._flows:
            raise LookupError("Unknown checkout flow")
        self._remove(flow_id, reason="closed")

    def close_all(self) -> None:
        for flow_id in list(self._flows):
            self.close(flow_id)

    def _evict_expired(self) -> None:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.config.flow_ttl_seconds)
        for flow_id, flow in list(self._flows.items()):
            if flow.state.is_terminal and flow.state.updated_at <= cutoff:
                self._remove(flow_id, reason="expired")

    def _eviction_candidate(self) -> str:
        # Oldest settled flow first, otherwise the oldest flow overall.
        for flow_id, flow in self._flows.items():
            if flow.state.is_terminal:
                return flow_id
        return next(iter(self._flows))

    def _remove(self, flow_id: str, *, reason: str) -> None:
        flow = self._flows.pop(flow_id)
        if flow.session is not None and self._by_session.get(flow.session.session_id) == flow_id:
            del self._by_session[flow.session.session_id]
        flow.close()
        logger.debug("Removed checkout flow %s (%s)", flow_id, reason)


def build_activator(config: CheckoutConfig) -> SubscriptionActivator:
    if config.activator_name == HTTP_ACTIVATOR:
        if not config.activator_url:
            raise ValueError("activator_url is required for the http activator")
        return HttpSubscriptionActivator(
            config.activator_url,
            token=config.activator_token,
            timeout=config.activator_http_timeout,
        )
    return LocalSandboxSubscriptionActivator()


@lru_cache(maxsize=1)
def get_checkout_config() -> CheckoutConfig:
    return load_checkout_config()


@lru_cache(maxsize=1)
def get_checkout_registry() -> CheckoutFlowRegistry:
    config = get_checkout_config()
    registry = CheckoutFlowRegistry(
        config=config,
        activator=build_activator(config),
        notifier=LoggingCheckoutNotifier(),
        invalidator=LoggingEntitlementInvalidator(),
    )
    return registry


__all__ = [
    "CheckoutFlowRegistry",
    "HttpSubscriptionActivator",
    "LocalSandboxSubscriptionActivator",
    "LoggingCheckoutNotifier",
    "LoggingEntitlementInvalidator",
    "build_activator",
    "get_checkout_config",
    "get_checkout_registry",
]
