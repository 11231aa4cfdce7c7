"""FastAPI router for emergency referral endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from medpath.core.types import ReferralStatus
from medpath.repositories import resolve

router = APIRouter()


class ReferralCreateRequest(BaseModel):
    source_id: int
    target_id: int


class ReferralDecisionRequest(BaseModel):
    approver: str = "admin"


def _workflow(request: Request):
    workflow = getattr(request.app.state, "referral_workflow", None)
    if workflow is None:
        raise HTTPException(status_code=503, detail="Referral workflow not available")
    return workflow


@router.get("/api/referrals")
async def list_referrals(
    request: Request,
    status: ReferralStatus | None = None,
    hospital_id: int | None = None,
    source_id: int | None = None,
) -> list[dict[str, Any]]:
    referrals = await resolve(_workflow(request).list(
        status=status, hospital_id=hospital_id, source_id=source_id,
    ))
    return [r.model_dump(mode="json") for r in referrals]


@router.post("/api/referrals", status_code=201)
async def submit_referral(body: ReferralCreateRequest, request: Request) -> dict[str, Any]:
    """Request transport from a node to a hospital along the current shortest route."""
    referral = await resolve(_workflow(request).submit(body.source_id, body.target_id, actor="api"))
    return referral.model_dump(mode="json")


@router.get("/api/referrals/{referral_id}")
async def get_referral(referral_id: str, request: Request) -> dict[str, Any]:
    referral = await resolve(_workflow(request).get(referral_id))
    return referral.model_dump(mode="json")


@router.post("/api/referrals/{referral_id}/approve")
async def approve_referral(
    referral_id: str, request: Request, body: ReferralDecisionRequest | None = None
) -> dict[str, Any]:
    approver = body.approver if body else "admin"
    referral = await resolve(_workflow(request).approve(referral_id, approver=approver))
    return referral.model_dump(mode="json")


@router.post("/api/referrals/{referral_id}/reject")
async def reject_referral(
    referral_id: str, request: Request, body: ReferralDecisionRequest | None = None
) -> dict[str, Any]:
    approver = body.approver if body else "admin"
    referral = await resolve(_workflow(request).reject(referral_id, approver=approver))
    return referral.model_dump(mode="json")


@router.post("/api/hospitals/{hospital_id}/approve-pending")
async def approve_all_pending(
    hospital_id: int, request: Request, body: ReferralDecisionRequest | None = None
) -> dict[str, Any]:
    """Approve a hospital's pending referrals oldest first until beds run out."""
    approver = body.approver if body else "admin"
    outcome = await resolve(_workflow(request).approve_all_pending(hospital_id, approver=approver))
    return outcome.model_dump()
