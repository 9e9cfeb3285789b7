"""Checkout reconciliation configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .session import DEFAULT_DISPLAY_LENGTH, DEFAULT_SESSION_PLACEHOLDER

SANDBOX_ACTIVATOR = "sandbox"
HTTP_ACTIVATOR = "http"


@dataclass(frozen=True)
class CheckoutConfig:
    """Timing and collaborator settings for reconciliation flows."""

    activation_timeout_seconds: float = 60.0
    auto_retry_delay_seconds: float = 5.0
    session_placeholder: str = DEFAULT_SESSION_PLACEHOLDER
    session_display_length: int = DEFAULT_DISPLAY_LENGTH
    continue_url: str = "/app/vault"
    activator_name: str = SANDBOX_ACTIVATOR
    activator_url: Optional[str] = None
    activator_token: Optional[str] = None
    activator_http_timeout: float = 30.0
    max_flows: int = 1000
    flow_ttl_seconds: float = 900.0


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_checkout_config(env: Optional[Mapping[str, str]] = None) -> CheckoutConfig:
    """Load :class:`CheckoutConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    timeout = _to_float(env_mapping.get("CHECKOUT_ACTIVATION_TIMEOUT_SECONDS"), default=60.0)
    if timeout <= 0:
        raise ValueError("CHECKOUT_ACTIVATION_TIMEOUT_SECONDS must be > 0")
    retry_delay = _to_float(env_mapping.get("CHECKOUT_AUTO_RETRY_DELAY_SECONDS"), default=5.0)
    if retry_delay <= 0:
        raise ValueError("CHECKOUT_AUTO_RETRY_DELAY_SECONDS must be > 0")

    placeholder = env_mapping.get("CHECKOUT_SESSION_PLACEHOLDER") or DEFAULT_SESSION_PLACEHOLDER
    display_length = max(
        1, _to_int(env_mapping.get("CHECKOUT_SESSION_DISPLAY_LENGTH"), default=DEFAULT_DISPLAY_LENGTH)
    )
    continue_url = env_mapping.get("CHECKOUT_CONTINUE_URL") or "/app/vault"

    activator_name = (env_mapping.get("CHECKOUT_ACTIVATOR") or SANDBOX_ACTIVATOR).strip().lower()
    if activator_name not in {SANDBOX_ACTIVATOR, HTTP_ACTIVATOR}:
        raise ValueError(f"Unsupported CHECKOUT_ACTIVATOR {activator_name!r}")
    activator_url = (env_mapping.get("CHECKOUT_ACTIVATOR_URL") or "").strip() or None
    if activator_name == HTTP_ACTIVATOR and not activator_url:
        raise ValueError("CHECKOUT_ACTIVATOR_URL is required when CHECKOUT_ACTIVATOR=http")
    activator_token = env_mapping.get("CHECKOUT_ACTIVATOR_TOKEN") or None
    http_timeout = max(0.1, _to_float(env_mapping.get("CHECKOUT_ACTIVATOR_HTTP_TIMEOUT"), default=30.0))
    max_flows = _to_int(env_mapping.get("CHECKOUT_MAX_FLOWS"), default=1000)
    if max_flows < 1:
        raise ValueError("CHECKOUT_MAX_FLOWS must be >= 1")
    flow_ttl = _to_float(env_mapping.get("CHECKOUT_FLOW_TTL_SECONDS"), default=900.0)
    if flow_ttl < 0:
        raise ValueError("CHECKOUT_FLOW_TTL_SECONDS must be >= 0")

    return CheckoutConfig(
        activation_timeout_seconds=timeout,
        auto_retry_delay_seconds=retry_delay,
        session_placeholder=placeholder,
        session_display_length=display_length,
        continue_url=continue_url,
        activator_name=activator_name,
        activator_url=activator_url,
        activator_token=activator_token,
        activator_http_timeout=http_timeout,
        max_flows=max_flows,
        flow_ttl_seconds=flow_ttl,
    )


__all__ = ["CheckoutConfig", "HTTP_ACTIVATOR", "SANDBOX_ACTIVATOR", "load_checkout_config"]
