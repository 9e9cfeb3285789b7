"""Read-only projection of a reconciliation flow for display."""
from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import CheckoutErrorKind
from .flow import ReconciliationFlow
from .models import ReconciliationPhase, ReconciliationState


class ReconciliationView(BaseModel):
    phase: ReconciliationPhase
    display_session_id: str = Field(alias="displaySessionId")
    last_error_detail: Optional[str] = Field(alias="lastErrorDetail", default=None)
    error_kind: Optional[CheckoutErrorKind] = Field(alias="errorKind", default=None)
    is_retrying: bool = Field(alias="isRetrying", default=False)
    auto_retry_pending: bool = Field(alias="autoRetryPending", default=False)
    can_retry: bool = Field(alias="canRetry", default=False)
    can_continue: bool = Field(alias="canContinue", default=False)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


def present(source: Union[ReconciliationFlow, ReconciliationState]) -> ReconciliationView:
    state = source.state if isinstance(source, ReconciliationFlow) else source
    in_error = state.phase == ReconciliationPhase.ERROR
    return ReconciliationView(
        phase=state.phase,
        display_session_id=state.display_session_id,
        last_error_detail=state.last_error_detail if in_error else None,
        error_kind=state.last_error_kind if in_error else None,
        is_retrying=state.is_retrying,
        auto_retry_pending=state.auto_retry_pending,
        can_retry=in_error and state.last_error_kind != CheckoutErrorKind.VALIDATION,
        can_continue=state.phase == ReconciliationPhase.SUCCESS,
    )


__all__ = ["ReconciliationView", "present"]
