from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from .db import get_db
from .services.generation import GenerationOrchestrator, PracticeProvider
from .services.practice_provider import GeminiPracticeProvider
from .services.quota import QuotaTracker
from .services.test_selector import SmartTestSelector
from .services.topic_cycle import SmartTopicCycle
from .stores import CandidateRepository, CompletionStore, PresetStore, UsageStore


def get_practice_provider() -> PracticeProvider:
	return GeminiPracticeProvider()


def get_quota_tracker(db: Session = Depends(get_db)) -> QuotaTracker:
	return QuotaTracker(UsageStore(db))


def get_topic_cycle(db: Session = Depends(get_db)) -> SmartTopicCycle:
	return SmartTopicCycle(CompletionStore(db))


def get_test_selector(db: Session = Depends(get_db)) -> SmartTestSelector:
	return SmartTestSelector(CandidateRepository(db), CompletionStore(db))


def get_orchestrator(
	db: Session = Depends(get_db),
	provider: PracticeProvider = Depends(get_practice_provider),
	quota: QuotaTracker = Depends(get_quota_tracker),
) -> GenerationOrchestrator:
	return GenerationOrchestrator(provider, PresetStore(db), quota)
