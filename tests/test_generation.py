import asyncio
import random
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from ielts_practice.errors import InvalidPayload, ProviderError, ProviderQuotaExceeded
from ielts_practice.models import FallbackPreset
from ielts_practice.schemas import GenerationOptions
from ielts_practice.services.generation import CancelToken, GenerationOrchestrator, GenerationState
from ielts_practice.services.practice_provider import ProviderResult
from ielts_practice.services.quota import QuotaStatus, QuotaTracker
from ielts_practice.stores import PresetStore, UsageStore

from factories import RecordingPresets, ScriptedProvider, add_preset, valid_payload


TODAY = date(2026, 3, 14)


class FakeSleep:
	def __init__(self):
		self.delays = []

	async def __call__(self, seconds):
		self.delays.append(seconds)


def _preset(preset_id, module="reading", payload=None):
	return FallbackPreset(
		id=preset_id,
		module=module,
		topic="Ocean & Marine Life",
		is_published=True,
		payload=payload if payload is not None else valid_payload(module),
	)


def _orchestrator(provider, presets, quota=None, sleep=None):
	return GenerationOrchestrator(
		provider,
		presets,
		quota,
		max_retries=2,
		backoff_seconds=2.0,
		rng=random.Random(0),
		sleep=sleep or FakeSleep(),
		clock_ms=lambda: 1700000000000,
	)


def _options(module="reading", **kwargs):
	kwargs.setdefault("question_type", "TRUE_FALSE_NOT_GIVEN")
	return GenerationOptions(module=module, **kwargs)


@pytest.mark.asyncio
async def test_first_attempt_success():
	provider = ScriptedProvider(valid_payload())
	presets = RecordingPresets([_preset("p1")])
	result = await _orchestrator(provider, presets).generate("alice", _options())
	assert result.success and not result.used_fallback
	assert result.state == GenerationState.SUCCEEDED
	assert result.attempts == 1
	assert provider.calls == 1
	assert presets.queries == []


@pytest.mark.asyncio
async def test_invalid_then_valid_retries_once():
	broken = valid_payload()
	del broken["passage"]
	sleep = FakeSleep()
	provider = ScriptedProvider(broken, valid_payload())
	result = await _orchestrator(provider, RecordingPresets(), sleep=sleep).generate("alice", _options())
	assert result.success and not result.used_fallback
	assert result.attempts == 2
	assert sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_retries_are_bounded_then_fallback():
	sleep = FakeSleep()
	provider = ScriptedProvider(ProviderError("boom", status_code=500))
	presets = RecordingPresets([_preset("reef-01")])
	result = await _orchestrator(provider, presets, sleep=sleep).generate("alice", _options())
	assert provider.calls == 2
	assert sleep.delays == [2.0]
	assert result.success and result.used_fallback
	assert result.state == GenerationState.FALLBACK_SUCCEEDED
	assert result.data["testId"] == "fallback-reef-01-1700000000000"
	assert result.data["isFallback"] is True
	assert result.data["topic"] == "Ocean & Marine Life"
	assert presets.queries == ["reading"]


@pytest.mark.asyncio
async def test_quota_error_skips_remaining_attempts():
	sleep = FakeSleep()
	provider = ScriptedProvider(ProviderQuotaExceeded())
	result = await _orchestrator(provider, RecordingPresets([_preset("p1")]), sleep=sleep).generate("alice", _options())
	assert provider.calls == 1
	assert sleep.delays == []
	assert result.used_fallback
	assert result.provider_kind == "quota"


@pytest.mark.asyncio
async def test_unexpected_exception_is_retried_like_provider_error():
	provider = ScriptedProvider(KeyError("candidates"), valid_payload())
	result = await _orchestrator(provider, RecordingPresets()).generate("alice", _options())
	assert result.success and result.attempts == 2


@pytest.mark.asyncio
async def test_invalid_presets_are_never_served():
	broken = valid_payload()
	broken["questionGroups"][0]["questions"][0]["correct_answer"] = None
	presets = RecordingPresets([_preset("bad", payload=broken), _preset("good")])
	provider = ScriptedProvider(InvalidPayload("no groups", module="reading"))
	for _ in range(5):
		result = await _orchestrator(provider, presets).generate("alice", _options())
		assert result.data["testId"].startswith("fallback-good-")


@pytest.mark.asyncio
async def test_no_valid_preset_fails_with_single_message():
	provider = ScriptedProvider(ProviderError("boom"))
	result = await _orchestrator(provider, RecordingPresets()).generate("alice", _options())
	assert not result.success
	assert result.state == GenerationState.FAILED
	assert result.error_code == "NO_FALLBACK"
	assert "try again" in result.error.lower()


@pytest.mark.asyncio
async def test_quota_failure_without_presets_points_at_credentials():
	provider = ScriptedProvider(ProviderQuotaExceeded())
	result = await _orchestrator(provider, RecordingPresets()).generate("alice", _options())
	assert not result.success
	assert "API key" in result.error


@pytest.mark.asyncio
async def test_unauthenticated_request_never_calls_provider():
	provider = ScriptedProvider(valid_payload())
	presets = RecordingPresets([_preset("p1")])
	result = await _orchestrator(provider, presets).generate(None, _options())
	assert not result.success
	assert result.error_code == "UNAUTHENTICATED"
	assert provider.calls == 0
	assert presets.queries == []


@pytest.mark.asyncio
async def test_cancel_during_backoff_stops_everything():
	token = CancelToken()

	async def cancelling_sleep(seconds):
		token.cancel()
		await asyncio.sleep(0)

	provider = ScriptedProvider(ProviderError("boom"))
	presets = RecordingPresets([_preset("p1")])
	result = await _orchestrator(provider, presets, sleep=cancelling_sleep).generate("alice", _options(), token)
	assert result.cancelled
	assert result.state == GenerationState.CANCELLED
	assert result.error_code == "CANCELLED"
	assert provider.calls == 1
	assert presets.queries == []


@pytest.mark.asyncio
async def test_cancel_aborts_in_flight_provider_call():
	token = CancelToken()
	started = asyncio.Event()

	class HangingProvider:
		calls = 0

		async def generate(self, options):
			self.calls += 1
			started.set()
			await asyncio.Event().wait()

	provider = HangingProvider()
	presets = RecordingPresets([_preset("p1")])
	task = asyncio.ensure_future(_orchestrator(provider, presets).generate("alice", _options(), token))
	await started.wait()
	token.cancel()
	result = await asyncio.wait_for(task, timeout=1)
	assert result.state == GenerationState.CANCELLED
	assert provider.calls == 1
	assert presets.queries == []


@pytest.mark.asyncio
async def test_already_cancelled_token_makes_no_calls():
	token = CancelToken()
	token.cancel()
	provider = ScriptedProvider(valid_payload())
	result = await _orchestrator(provider, RecordingPresets()).generate("alice", _options(), token)
	assert result.cancelled
	assert provider.calls == 0


@pytest.mark.asyncio
async def test_success_records_reported_tokens(db):
	quota = QuotaTracker(UsageStore(db), daily_limit=1_500_000, today=lambda: TODAY)
	provider = ScriptedProvider(ProviderResult(payload=valid_payload(), tokens_used=12_345))
	result = await _orchestrator(provider, RecordingPresets(), quota).generate("alice", _options())
	assert result.success
	assert result.quota.has_enough
	usage = quota.usage_today("alice")
	assert usage.tokens_used == 12_345
	assert usage.requests_count == 1


@pytest.mark.asyncio
async def test_success_without_token_count_records_estimate(db):
	quota = QuotaTracker(UsageStore(db), daily_limit=1_500_000, today=lambda: TODAY)
	provider = ScriptedProvider(valid_payload("listening"))
	await _orchestrator(provider, RecordingPresets(), quota).generate(
		"alice", _options("listening", question_type="MCQ", difficulty="hard")
	)
	assert quota.usage_today("alice").tokens_used == 30_000


@pytest.mark.asyncio
async def test_low_quota_warns_but_still_generates(db):
	store = UsageStore(db)
	store.increment("alice", TODAY, 1_495_000)
	quota = QuotaTracker(store, daily_limit=1_500_000, today=lambda: TODAY)
	provider = ScriptedProvider(valid_payload())
	result = await _orchestrator(provider, RecordingPresets(), quota).generate("alice", _options())
	assert result.success
	assert result.quota_warning
	assert provider.calls == 1


@pytest.mark.asyncio
async def test_fallback_reads_presets_from_database(db):
	add_preset(db, "db-reef")
	add_preset(db, "unpublished", is_published=False)
	add_preset(db, "listening-only", module="listening")
	provider = ScriptedProvider(ProviderError("boom"))
	result = await _orchestrator(provider, PresetStore(db)).generate("alice", _options())
	assert result.data["testId"] == "fallback-db-reef-1700000000000"
	assert result.data["passage"]["title"] == "Coral Reefs"


class BrokenQuota:
	"""Quota tracker whose backing store is unreachable."""

	def __init__(self, fail_check=False, fail_record=False):
		self.fail_check = fail_check
		self.fail_record = fail_record

	def check_availability(self, user_id, estimated_cost):
		if self.fail_check:
			raise OperationalError("SELECT", {}, Exception("database is locked"))
		return QuotaStatus(True, 1_000_000, 0.0, 0, 0, 1_000_000)

	def record_usage(self, user_id, tokens_used):
		if self.fail_record:
			raise OperationalError("INSERT", {}, Exception("database is locked"))


@pytest.mark.asyncio
async def test_quota_lookup_failure_still_generates():
	provider = ScriptedProvider(valid_payload())
	result = await _orchestrator(provider, RecordingPresets(), BrokenQuota(fail_check=True)).generate("alice", _options())
	assert result.success
	assert result.quota is None
	assert not result.quota_warning
	assert provider.calls == 1


@pytest.mark.asyncio
async def test_usage_write_failure_keeps_generated_payload():
	provider = ScriptedProvider(valid_payload())
	result = await _orchestrator(provider, RecordingPresets(), BrokenQuota(fail_record=True)).generate("alice", _options())
	assert result.success
	assert result.state == GenerationState.SUCCEEDED
	assert result.data["passage"]["title"] == "Coral Reefs"
	assert provider.calls == 1


@pytest.mark.asyncio
async def test_cancelling_the_caller_stops_the_provider_call():
	started = asyncio.Event()

	class HangingProvider:
		aborted = False

		async def generate(self, options):
			started.set()
			try:
				await asyncio.Event().wait()
			except asyncio.CancelledError:
				self.aborted = True
				raise

	provider = HangingProvider()
	task = asyncio.ensure_future(_orchestrator(provider, RecordingPresets()).generate("alice", _options()))
	await started.wait()
	task.cancel()
	with pytest.raises(asyncio.CancelledError):
		await task
	assert provider.aborted


@pytest.mark.asyncio
async def test_failure_carries_title_and_action():
	provider = ScriptedProvider(ProviderQuotaExceeded())
	result = await _orchestrator(provider, RecordingPresets()).generate("alice", _options())
	assert result.error_title == "API quota or key problem"
	assert result.error_action == "/settings"
