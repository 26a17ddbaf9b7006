from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.dialects import postgresql, sqlite
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./app.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


def utcnow() -> datetime:
	# Naive UTC, matching the DateTime columns
	return datetime.now(timezone.utc).replace(tzinfo=None)


def init_db() -> None:
	Base.metadata.create_all(bind=engine)


def upsert_insert(db: Session, table):
	"""Return a dialect-specific INSERT that supports ON CONFLICT DO UPDATE.

	Counters are bumped with `col = col + n` inside the conflict clause so the
	database applies the increment atomically.
	"""
	dialect = db.get_bind().dialect.name
	if dialect == "postgresql":
		return postgresql.insert(table)
	if dialect == "sqlite":
		return sqlite.insert(table)
	raise RuntimeError(f"Atomic upsert not supported for dialect {dialect!r}")
