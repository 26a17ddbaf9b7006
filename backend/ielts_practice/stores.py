"""
SQLAlchemy-backed stores for counters, candidate tests, presets and daily usage.

Every counter update is a single SQL statement (`col = col + n` or an
INSERT ... ON CONFLICT DO UPDATE). Nothing here reads a counter, adds to it in
Python and writes it back.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from .db import upsert_insert, utcnow
from .models import FallbackPreset, GeminiDailyUsage, GeneratedTest, TopicCompletion, UserTestHistory


class CompletionStore:
	def __init__(self, db: Session) -> None:
		self.db = db

	def counts(self, user_id: str, module: str) -> Dict[str, int]:
		rows = self.db.execute(
			select(TopicCompletion.topic, TopicCompletion.completed_count).where(
				TopicCompletion.user_id == user_id,
				TopicCompletion.module == module,
			)
		).all()
		return {topic: int(count) for topic, count in rows}

	def increment(self, user_id: str, module: str, topic: str) -> int:
		table = TopicCompletion.__table__
		now = utcnow()
		stmt = upsert_insert(self.db, table).values(
			user_id=user_id, module=module, topic=topic, completed_count=1, created_at=now, updated_at=now,
		)
		stmt = stmt.on_conflict_do_update(
			index_elements=[table.c.user_id, table.c.module, table.c.topic],
			set_={"completed_count": table.c.completed_count + 1, "updated_at": now},
		)
		self.db.execute(stmt)
		self.db.commit()
		return int(self.db.execute(
			select(TopicCompletion.completed_count).where(
				TopicCompletion.user_id == user_id,
				TopicCompletion.module == module,
				TopicCompletion.topic == topic,
			)
		).scalar_one())


class CandidateRepository:
	def __init__(self, db: Session) -> None:
		self.db = db

	def _published(self, module: str):
		return select(GeneratedTest).where(
			GeneratedTest.module == module,
			GeneratedTest.is_published.is_(True),
			GeneratedTest.status == "ready",
		)

	def find_candidates(self, module: str, topic: Optional[str] = None) -> List[GeneratedTest]:
		query = self._published(module)
		if topic:
			query = query.where(GeneratedTest.topic == topic)
		return list(self.db.execute(query.order_by(GeneratedTest.created_at.asc())).scalars())

	def available_topics(self, module: str) -> List[str]:
		rows = self.db.execute(
			select(GeneratedTest.topic).distinct().where(
				GeneratedTest.module == module,
				GeneratedTest.is_published.is_(True),
				GeneratedTest.status == "ready",
				GeneratedTest.topic.isnot(None),
			)
		).scalars()
		return sorted(rows)

	def mark_used(self, test_id: str, now: Optional[datetime] = None) -> None:
		self.db.execute(
			update(GeneratedTest)
			.where(GeneratedTest.id == test_id)
			.values(times_used=GeneratedTest.times_used + 1, last_used_at=now or utcnow())
		)
		self.db.commit()

	def recent_test_ids(self, user_id: str, limit: int = 20) -> List[str]:
		return list(self.db.execute(
			select(UserTestHistory.test_id)
			.where(UserTestHistory.user_id == user_id)
			.order_by(UserTestHistory.taken_at.desc(), UserTestHistory.id.desc())
			.limit(limit)
		).scalars())

	def accents_for(self, test_ids: Iterable[str]) -> List[str]:
		ids = list(test_ids)
		if not ids:
			return []
		rows = self.db.execute(select(GeneratedTest.accent).where(GeneratedTest.id.in_(ids))).scalars()
		return [a for a in rows if a]

	def upsert_history(self, user_id: str, test_id: str, now: Optional[datetime] = None) -> None:
		table = UserTestHistory.__table__
		taken_at = now or utcnow()
		stmt = upsert_insert(self.db, table).values(user_id=user_id, test_id=test_id, taken_at=taken_at)
		stmt = stmt.on_conflict_do_update(
			index_elements=[table.c.user_id, table.c.test_id],
			set_={"taken_at": taken_at},
		)
		self.db.execute(stmt)
		self.db.commit()


class PresetStore:
	def __init__(self, db: Session) -> None:
		self.db = db

	def published_presets(self, module: str) -> List[FallbackPreset]:
		return list(self.db.execute(
			select(FallbackPreset).where(
				FallbackPreset.module == module,
				FallbackPreset.is_published.is_(True),
			)
		).scalars())


class UsageStore:
	def __init__(self, db: Session) -> None:
		self.db = db

	def get(self, user_id: str, usage_date: date) -> Optional[GeminiDailyUsage]:
		return self.db.execute(
			select(GeminiDailyUsage).where(
				GeminiDailyUsage.user_id == user_id,
				GeminiDailyUsage.usage_date == usage_date,
			)
		).scalar_one_or_none()

	def increment(self, user_id: str, usage_date: date, tokens: int) -> None:
		table = GeminiDailyUsage.__table__
		now = utcnow()
		stmt = upsert_insert(self.db, table).values(
			user_id=user_id, usage_date=usage_date, tokens_used=tokens, requests_count=1, last_updated_at=now,
		)
		stmt = stmt.on_conflict_do_update(
			index_elements=[table.c.user_id, table.c.usage_date],
			set_={
				"tokens_used": table.c.tokens_used + tokens,
				"requests_count": table.c.requests_count + 1,
				"last_updated_at": now,
			},
		)
		self.db.execute(stmt)
		self.db.commit()

	def delete(self, user_id: str, usage_date: date) -> int:
		res = self.db.execute(
			delete(GeminiDailyUsage).where(
				GeminiDailyUsage.user_id == user_id,
				GeminiDailyUsage.usage_date == usage_date,
			)
		)
		self.db.commit()
		return res.rowcount or 0
