from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_topic_cycle
from ..schemas import CompletionRequest
from ..services.topic_cycle import SmartTopicCycle
from ..topics import MODULES
from .auth import User, get_current_user


router = APIRouter(prefix="/topics", tags=["topics"])


def _validate_module(module: str) -> str:
	if module not in MODULES:
		raise HTTPException(status_code=400, detail=f"module must be one of {list(MODULES)}")
	return module


@router.get("/{module}")
async def topic_cycle(
	module: str,
	subtype: Optional[str] = None,
	user: User = Depends(get_current_user),
	cycle: SmartTopicCycle = Depends(get_topic_cycle),
):
	snapshot = cycle.snapshot(user.username, _validate_module(module), subtype)
	labels = snapshot.labels()
	return {
		"module": module,
		"subtype": subtype,
		"next_topic": snapshot.next_topic,
		"cycle_count": snapshot.cycle_count,
		"topics": [
			{"topic": t, "completed": snapshot.completions.get(t, 0), "label": labels[t]}
			for t in snapshot.catalog
		],
	}


@router.post("/{module}/complete")
async def complete_topic(
	module: str,
	req: CompletionRequest,
	user: User = Depends(get_current_user),
	cycle: SmartTopicCycle = Depends(get_topic_cycle),
):
	count = cycle.increment_completion(user.username, _validate_module(module), req.topic.strip())
	return {"module": module, "topic": req.topic.strip(), "completed": count}
