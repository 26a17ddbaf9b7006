from __future__ import annotations
import uuid
from sqlalchemy import Boolean, Column, Date, String, DateTime, Integer, JSON, UniqueConstraint, Index
from .db import Base, utcnow


def _uuid() -> str:
	return uuid.uuid4().hex


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	phone = Column(String(32), nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=utcnow, nullable=False)


class TopicCompletion(Base):
	__tablename__ = "ai_practice_topic_completions"
	__table_args__ = (UniqueConstraint("user_id", "module", "topic", name="uq_topic_completion"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	module = Column(String(16), nullable=False)
	topic = Column(String(256), nullable=False)
	completed_count = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class GeneratedTest(Base):
	__tablename__ = "generated_tests"
	__table_args__ = (Index("ix_generated_tests_lookup", "module", "is_published", "status"),)
	id = Column(String(64), primary_key=True, default=_uuid)
	module = Column(String(16), nullable=False)
	topic = Column(String(256), nullable=True)
	accent = Column(String(32), nullable=True)
	# "ready" once content generation has finished; other values are ignored by selection
	status = Column(String(16), default="pending", nullable=False)
	is_published = Column(Boolean, default=False, nullable=False)
	times_used = Column(Integer, default=0, nullable=False)
	last_used_at = Column(DateTime, nullable=True)
	payload = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class UserTestHistory(Base):
	__tablename__ = "user_test_history"
	__table_args__ = (UniqueConstraint("user_id", "test_id", name="uq_user_test_history"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	test_id = Column(String(64), nullable=False)
	taken_at = Column(DateTime, default=utcnow, nullable=False)


class FallbackPreset(Base):
	__tablename__ = "test_presets"
	id = Column(String(64), primary_key=True, default=_uuid)
	module = Column(String(16), nullable=False, index=True)
	topic = Column(String(256), nullable=True)
	is_published = Column(Boolean, default=False, nullable=False)
	payload = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class GeminiDailyUsage(Base):
	__tablename__ = "gemini_daily_usage"
	__table_args__ = (UniqueConstraint("user_id", "usage_date", name="uq_gemini_daily_usage"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	usage_date = Column(Date, nullable=False)
	tokens_used = Column(Integer, default=0, nullable=False)
	requests_count = Column(Integer, default=0, nullable=False)
	last_updated_at = Column(DateTime, default=utcnow, nullable=False)
