"""Parsing of checkout return redirect parameters."""
from __future__ import annotations

from typing import Mapping, Optional

from .exceptions import SessionValidationError
from .models import PaymentSession, PlanSelector

# Literal the payment provider substitutes into the return URL. Seeing it
# verbatim means the substitution never happened.
DEFAULT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"
DEFAULT_DISPLAY_LENGTH = 20

SESSION_ID_PARAM = "session_id"
PLAN_PARAM = "plan"


def extract_payment_session(
    params: Mapping[str, str],
    *,
    placeholder: str = DEFAULT_SESSION_PLACEHOLDER,
) -> PaymentSession:
    """Build a :class:`PaymentSession` from raw redirect query parameters.

    Raises :class:`SessionValidationError` when the session id is missing,
    blank or the unexpanded placeholder, or when the plan key is unknown.
    """

    session_id = params.get(SESSION_ID_PARAM) or ""
    if not session_id.strip() or session_id == placeholder:
        raise SessionValidationError("invalid session id")

    plan_key = params.get(PLAN_PARAM) or ""
    try:
        plan = PlanSelector(plan_key)
    except ValueError as exc:
        raise SessionValidationError("unrecognized plan") from exc

    return PaymentSession(session_id=session_id, plan=plan)


def mask_session_id(raw: Optional[str], *, length: int = DEFAULT_DISPLAY_LENGTH) -> str:
    """Return a display-safe prefix of a session id."""

    if not raw:
        return "N/A"
    if len(raw) > length:
        return f"{raw[:length]}..."
    return raw


__all__ = [
    "DEFAULT_DISPLAY_LENGTH",
    "DEFAULT_SESSION_PLACEHOLDER",
    "PLAN_PARAM",
    "SESSION_ID_PARAM",
    "extract_payment_session",
    "mask_session_id",
]
