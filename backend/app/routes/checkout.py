"""API routes exposing checkout reconciliation."""
from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Response, status

from ..checkout import present
from ..checkout.session import PLAN_PARAM, SESSION_ID_PARAM
from ..schemas.checkout import ContinueResponse, ManualRetryResponse, ReconciliationStatusResponse
from ..services.checkout import get_checkout_registry


router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("/return", response_model=ReconciliationStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def open_checkout_return(
    session_id: Optional[str] = Query(default=None),
    plan: Optional[str] = Query(default=None),
) -> ReconciliationStatusResponse:
    registry = get_checkout_registry()
    params: Dict[str, str] = {}
    if session_id is not None:
        params[SESSION_ID_PARAM] = session_id
    if plan is not None:
        params[PLAN_PARAM] = plan

    flow_id, flow, created = registry.open(params)
    flow.begin()
    return ReconciliationStatusResponse.from_flow(flow_id, flow, created=created)


@router.get("/flows/{flow_id}", response_model=ReconciliationStatusResponse)
async def get_flow_status(flow_id: str) -> ReconciliationStatusResponse:
    registry = get_checkout_registry()
    try:
        flow = registry.get(flow_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ReconciliationStatusResponse.from_flow(flow_id, flow)


@router.post("/flows/{flow_id}/retry", response_model=ManualRetryResponse)
async def retry_flow(flow_id: str) -> ManualRetryResponse:
    registry = get_checkout_registry()
    try:
        flow = registry.get(flow_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    accepted = flow.request_manual_retry()
    return ManualRetryResponse(flow_id=flow_id, accepted=accepted, view=present(flow))


@router.post("/flows/{flow_id}/continue", response_model=ContinueResponse)
async def continue_flow(flow_id: str) -> ContinueResponse:
    registry = get_checkout_registry()
    try:
        flow = registry.get(flow_id)
        redirect_url = flow.continue_to()
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return ContinueResponse(redirect_url=redirect_url)


@router.delete("/flows/{flow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_flow(flow_id: str) -> Response:
    registry = get_checkout_registry()
    try:
        registry.close(flow_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
