from __future__ import annotations
from dataclasses import asdict
from typing import Any, Dict, Tuple

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_orchestrator
from ..schemas import GenerateRequest
from ..services.generation import CancelToken, GenerationOrchestrator, GenerationResult
from .auth import User, get_current_user


router = APIRouter(prefix="/practice", tags=["practice"])

# In-flight generations keyed by (username, request_id)
_inflight: Dict[Tuple[str, str], CancelToken] = {}


def _result_payload(result: GenerationResult) -> Dict[str, Any]:
	return {
		"success": result.success,
		"data": result.data,
		"used_fallback": result.used_fallback,
		"error": result.error,
		"error_code": result.error_code,
		"error_title": result.error_title,
		"error_action": result.error_action,
		"state": result.state.value,
		"attempts": result.attempts,
		"quota_warning": result.quota_warning,
		"quota": asdict(result.quota) if result.quota else None,
	}


@router.post("/generate")
async def generate(
	req: GenerateRequest,
	user: User = Depends(get_current_user),
	orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
	token = CancelToken()
	key = (user.username, req.request_id) if req.request_id else None
	if key is not None:
		if key in _inflight:
			raise HTTPException(status_code=409, detail="request_id already in progress")
		_inflight[key] = token
	try:
		result = await orchestrator.generate(user.username, req, token)
	finally:
		if key is not None:
			_inflight.pop(key, None)
	return _result_payload(result)


@router.post("/generate/{request_id}/cancel")
async def cancel_generation(request_id: str, user: User = Depends(get_current_user)):
	token = _inflight.get((user.username, request_id))
	if token is None:
		raise HTTPException(status_code=404, detail="No generation in progress for this request_id")
	token.cancel()
	return {"cancelled": True, "request_id": request_id}
