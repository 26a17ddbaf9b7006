import random

from ielts_practice.deps import get_orchestrator, get_practice_provider
from ielts_practice.errors import ProviderError, ProviderQuotaExceeded
from ielts_practice.main import app
from ielts_practice.services.generation import GenerationOrchestrator
from ielts_practice.services.quota import QuotaTracker
from ielts_practice.stores import PresetStore, UsageStore
from ielts_practice.topics import LISTENING_TOPICS

from factories import ScriptedProvider, add_preset, add_test, valid_payload


def test_info(client):
	assert client.get("/info").json()["status"] == "ok"


def test_register_login_and_me(client):
	r = client.post("/auth/register", json={"username": "carol", "password": "s3cret-pass"})
	assert r.status_code == 201
	assert client.post("/auth/register", json={"username": "carol", "password": "x"}).status_code == 409
	r = client.post("/auth/token", data={"username": "carol", "password": "s3cret-pass"})
	assert r.status_code == 200
	token = r.json()["access_token"]
	me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
	assert me.json() == {"username": "carol"}
	assert client.post("/auth/token", data={"username": "carol", "password": "wrong"}).status_code == 401


def test_protected_routes_need_a_token(client):
	assert client.get("/topics/reading").status_code == 401
	assert client.get("/quota").status_code == 401
	assert client.post("/practice/generate", json={"module": "reading", "question_type": "MCQ"}).status_code == 401


def test_topic_cycle_round_trip(client, auth_headers):
	r = client.get("/topics/listening", headers=auth_headers)
	assert r.status_code == 200
	body = r.json()
	assert body["next_topic"] == LISTENING_TOPICS[0]
	assert body["cycle_count"] == 0

	r = client.post("/topics/listening/complete", json={"topic": LISTENING_TOPICS[0]}, headers=auth_headers)
	assert r.json()["completed"] == 1

	body = client.get("/topics/listening", headers=auth_headers).json()
	assert body["next_topic"] == LISTENING_TOPICS[1]
	first = body["topics"][0]
	assert first == {"topic": LISTENING_TOPICS[0], "completed": 1, "label": f"{LISTENING_TOPICS[0]} (1 completed)"}


def test_unknown_module_is_rejected(client, auth_headers):
	assert client.get("/topics/maths", headers=auth_headers).status_code == 400


def test_smart_test_without_content_is_a_distinct_404(client):
	r = client.post("/tests/smart", json={"module": "listening"})
	assert r.status_code == 404
	assert r.json()["code"] == "NO_TESTS"


def test_smart_test_serves_and_counts(client, db, auth_headers):
	add_test(db, "t1")
	r = client.post("/tests/smart", json={"module": "listening"}, headers=auth_headers)
	assert r.status_code == 200
	body = r.json()
	assert body["success"] is True
	assert body["test"]["id"] == "t1"
	assert body["topic"] == "Travel & Tourism"
	assert body["repeated"] is False
	body = client.post("/tests/smart", json={"module": "listening"}, headers=auth_headers).json()
	assert body["repeated"] is True
	assert body["test"]["times_used"] == 2


def test_smart_test_ignores_a_bad_token(client, db):
	add_test(db, "t1")
	r = client.post("/tests/smart", json={"module": "listening"}, headers={"Authorization": "Bearer junk"})
	assert r.status_code == 200


def test_quota_endpoints(client, auth_headers):
	body = client.get("/quota", headers=auth_headers).json()
	assert body["tokens_used"] == 0
	assert body["limit"] == 1_500_000

	r = client.post("/quota/check", json={"module": "listening", "difficulty": "easy"}, headers=auth_headers)
	assert r.json()["estimated_cost"] == 20000
	assert r.json()["has_enough"] is True
	assert client.post("/quota/check", json={}, headers=auth_headers).status_code == 400

	r = client.delete("/quota/today", headers=auth_headers)
	assert r.json()["display_only"] is True
	assert "does not reset" in r.json()["message"]


def test_generate_success_records_usage(client, auth_headers):
	provider = ScriptedProvider(valid_payload())
	app.dependency_overrides[get_practice_provider] = lambda: provider
	r = client.post(
		"/practice/generate",
		json={"module": "reading", "question_type": "TRUE_FALSE_NOT_GIVEN", "request_id": "r1"},
		headers=auth_headers,
	)
	body = r.json()
	assert body["success"] is True
	assert body["state"] == "succeeded"
	assert body["used_fallback"] is False
	assert body["quota_warning"] is False
	assert client.get("/quota", headers=auth_headers).json()["tokens_used"] == 15000


def test_generate_falls_back_to_preset(client, db, auth_headers):
	add_preset(db, "reef")
	provider = ScriptedProvider(ProviderError("boom", status_code=503))

	async def no_sleep(seconds):
		return None

	def orchestrator():
		return GenerationOrchestrator(
			provider, PresetStore(db), QuotaTracker(UsageStore(db)), rng=random.Random(0), sleep=no_sleep,
		)

	app.dependency_overrides[get_orchestrator] = orchestrator
	body = client.post(
		"/practice/generate",
		json={"module": "reading", "question_type": "TRUE_FALSE_NOT_GIVEN"},
		headers=auth_headers,
	).json()
	assert body["success"] is True
	assert body["used_fallback"] is True
	assert body["state"] == "fallback_succeeded"
	assert body["data"]["testId"].startswith("fallback-reef-")
	assert provider.calls == 2


def test_generate_rejects_bad_options(client, auth_headers):
	r = client.post("/practice/generate", json={"module": "cooking", "question_type": "MCQ"}, headers=auth_headers)
	assert r.status_code == 422


def test_cancel_unknown_request(client, auth_headers):
	assert client.post("/practice/generate/nope/cancel", headers=auth_headers).status_code == 404


def test_logout_revokes_the_session(client, auth_headers):
	assert client.get("/auth/me", headers=auth_headers).status_code == 200
	assert client.post("/auth/logout", headers=auth_headers).json() == {"ok": True}
	assert client.get("/auth/me", headers=auth_headers).status_code == 401


def test_seed_user_can_log_in(client, db, monkeypatch):
	from ielts_practice.routers.auth import seed_user
	from ielts_practice.settings import settings

	monkeypatch.setattr(settings, "seed_username", "demo")
	monkeypatch.setattr(settings, "seed_password_plain", "demo-pass")
	seed_user(db)
	seed_user(db)
	r = client.post("/auth/token", data={"username": "demo", "password": "demo-pass"})
	assert r.status_code == 200


def test_generate_failure_tells_the_caller_where_to_go(client, auth_headers):
	app.dependency_overrides[get_practice_provider] = lambda: ScriptedProvider(ProviderQuotaExceeded())
	body = client.post(
		"/practice/generate",
		json={"module": "writing", "question_type": "TASK_2"},
		headers=auth_headers,
	).json()
	assert body["success"] is False
	assert body["error_code"] == "NO_FALLBACK"
	assert body["error_title"] == "API quota or key problem"
	assert body["error_action"] == "/settings"
