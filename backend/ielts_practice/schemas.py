from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Module = Literal["reading", "listening", "writing", "speaking"]


class GenerationOptions(BaseModel):
	module: Module
	question_type: str = Field(min_length=1, description="e.g. TRUE_FALSE_NOT_GIVEN, TASK_2, PART_1")
	difficulty: str = "medium"
	topic_preference: Optional[str] = None
	question_count: int = Field(default=5, ge=1, le=40)
	time_minutes: int = Field(default=20, ge=1, le=180)
	reading_config: Optional[Dict[str, Any]] = None
	listening_config: Optional[Dict[str, Any]] = None
	writing_config: Optional[Dict[str, Any]] = None
	speaking_config: Optional[Dict[str, Any]] = None

	def module_config(self) -> Dict[str, Any]:
		return getattr(self, f"{self.module}_config") or {}


class GenerateRequest(GenerationOptions):
	# Client-chosen id so a later cancel call can find the in-flight request
	request_id: Optional[str] = Field(default=None, max_length=64)


class SmartTestRequest(BaseModel):
	module: Module
	topic: Optional[str] = None
	exclude_test_ids: List[str] = Field(default_factory=list)
	preferred_accent: Optional[str] = None


class CompletionRequest(BaseModel):
	topic: str = Field(min_length=1)


class QuotaCheckRequest(BaseModel):
	module: Optional[Module] = None
	difficulty: str = "medium"
	estimated_cost: Optional[int] = Field(default=None, ge=0)
