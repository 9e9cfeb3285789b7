"""API schemas for checkout reconciliation endpoints."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..checkout import ReconciliationFlow, ReconciliationView, present


class ReconciliationStatusResponse(BaseModel):
    flow_id: Optional[str] = Field(default=None, alias="flowId")
    view: ReconciliationView
    created: bool = False

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_flow(cls, flow_id: Optional[str], flow: ReconciliationFlow, *, created: bool = False) -> "ReconciliationStatusResponse":
        return cls(flow_id=flow_id, view=present(flow), created=created)


class ManualRetryResponse(BaseModel):
    flow_id: str = Field(alias="flowId")
    accepted: bool
    view: ReconciliationView

    model_config = ConfigDict(populate_by_name=True)


class ContinueResponse(BaseModel):
    redirect_url: str = Field(alias="redirectUrl")

    model_config = ConfigDict(populate_by_name=True)
