"""
Daily Gemini token tracking.

Only in-app usage is counted and the limit mirrors the provider's free tier,
so every figure here is advisory: it drives warnings, not enforcement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional

from ..settings import settings
from ..stores import UsageStore

logger = logging.getLogger(__name__)

BASE_COSTS = {
	"reading": 15000,
	"listening": 25000,
	"writing": 20000,
	"speaking": 18000,
}
DEFAULT_BASE_COST = 15000

DIFFICULTY_MULTIPLIERS = {
	"easy": 0.8,
	"medium": 1.0,
	"hard": 1.2,
	"expert": 1.4,
}

RESET_NOTICE = (
	"Local usage counter reset. This does not reset your actual Gemini API quota, only the in-app tracking."
)


def estimate_token_cost(module: str, difficulty: str = "medium") -> int:
	base = BASE_COSTS.get(module, DEFAULT_BASE_COST)
	multiplier = DIFFICULTY_MULTIPLIERS.get(difficulty, 1.0)
	return int(round(base * multiplier))


def utc_today() -> date:
	return datetime.now(timezone.utc).date()


@dataclass
class QuotaStatus:
	has_enough: bool
	remaining: int
	percent_used: float
	tokens_used: int
	requests_count: int
	limit: int


@dataclass
class UsageSnapshot:
	usage_date: date
	tokens_used: int
	requests_count: int
	limit: int

	@property
	def remaining(self) -> int:
		return max(self.limit - self.tokens_used, 0)

	@property
	def percent_used(self) -> float:
		return min(self.tokens_used / self.limit * 100, 100.0) if self.limit else 100.0


class QuotaTracker:
	def __init__(self, store: UsageStore, *, daily_limit: Optional[int] = None, today: Callable[[], date] = utc_today) -> None:
		self.store = store
		self.daily_limit = daily_limit if daily_limit is not None else settings.gemini_daily_token_limit
		self._today = today

	def usage_today(self, user_id: str) -> UsageSnapshot:
		day = self._today()
		row = self.store.get(user_id, day)
		return UsageSnapshot(
			usage_date=day,
			tokens_used=int(row.tokens_used) if row else 0,
			requests_count=int(row.requests_count) if row else 0,
			limit=self.daily_limit,
		)

	def check_availability(self, user_id: str, estimated_cost: int) -> QuotaStatus:
		usage = self.usage_today(user_id)
		remaining = self.daily_limit - usage.tokens_used
		percent = (usage.tokens_used / self.daily_limit * 100) if self.daily_limit else 100.0
		return QuotaStatus(
			has_enough=remaining >= estimated_cost,
			remaining=remaining,
			percent_used=percent,
			tokens_used=usage.tokens_used,
			requests_count=usage.requests_count,
			limit=self.daily_limit,
		)

	def record_usage(self, user_id: str, tokens_used: int) -> None:
		if tokens_used <= 0:
			return
		self.store.increment(user_id, self._today(), int(tokens_used))
		logger.info("Recorded %d Gemini tokens for %s", tokens_used, user_id)

	def reset_today(self, user_id: str) -> str:
		removed = self.store.delete(user_id, self._today())
		logger.info("Reset local usage counter for %s (%d row(s) removed)", user_id, removed)
		return RESET_NOTICE
