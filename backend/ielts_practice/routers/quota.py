from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_quota_tracker
from ..schemas import QuotaCheckRequest
from ..services.quota import QuotaTracker, estimate_token_cost
from .auth import User, get_current_user


router = APIRouter(prefix="/quota", tags=["quota"])


@router.get("")
async def usage_today(user: User = Depends(get_current_user), tracker: QuotaTracker = Depends(get_quota_tracker)):
	usage = tracker.usage_today(user.username)
	return {
		"usage_date": usage.usage_date.isoformat(),
		"tokens_used": usage.tokens_used,
		"requests_count": usage.requests_count,
		"limit": usage.limit,
		"remaining": usage.remaining,
		"percent_used": round(usage.percent_used, 1),
		"note": "Only in-app usage is tracked. Resets at midnight UTC.",
	}


@router.post("/check")
async def check(
	req: QuotaCheckRequest,
	user: User = Depends(get_current_user),
	tracker: QuotaTracker = Depends(get_quota_tracker),
):
	if req.estimated_cost is not None:
		cost = req.estimated_cost
	elif req.module is not None:
		cost = estimate_token_cost(req.module, req.difficulty)
	else:
		raise HTTPException(status_code=400, detail="module or estimated_cost is required")
	status = tracker.check_availability(user.username, cost)
	return {
		"estimated_cost": cost,
		"has_enough": status.has_enough,
		"remaining": status.remaining,
		"percent_used": status.percent_used,
	}


@router.delete("/today")
async def reset_today(user: User = Depends(get_current_user), tracker: QuotaTracker = Depends(get_quota_tracker)):
	notice = tracker.reset_today(user.username)
	return {"reset": True, "display_only": True, "message": notice}
