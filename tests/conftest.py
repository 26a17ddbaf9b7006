"""
Shared fixtures.

- In-memory SQLite (one shared connection) so upserts and unique constraints behave for real
- Only external collaborators (the Gemini provider) are faked
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ielts_practice import models  # noqa: F401  registers tables on Base.metadata
from ielts_practice.db import Base, get_db


@pytest.fixture
def db_engine():
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
	)
	Base.metadata.create_all(bind=engine)
	try:
		yield engine
	finally:
		Base.metadata.drop_all(bind=engine)
		engine.dispose()


@pytest.fixture
def db(db_engine):
	TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
	session = TestingSessionLocal()
	try:
		yield session
	finally:
		session.close()


@pytest.fixture
def client(db):
	"""FastAPI test client bound to the test database. Startup hooks are not run."""
	from ielts_practice.main import app

	def override_get_db():
		yield db

	app.dependency_overrides[get_db] = override_get_db
	try:
		yield TestClient(app)
	finally:
		app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(db):
	from ielts_practice.routers.auth import open_session

	token = open_session(db, "alice")
	return {"Authorization": f"Bearer {token}"}
