"""
Generation with bounded retry, then fallback to stored presets.

A single `generate` call moves through these states:

    IDLE -> ATTEMPTING(n) -> VALIDATING -> SUCCEEDED
                                        -> RETRYING -> ATTEMPTING(n+1)
    ... -> FALLBACK_LOOKUP -> FALLBACK_SUCCEEDED | FAILED

CANCELLED is reachable from every non-terminal state. Provider quota errors
skip the remaining attempts and go straight to the fallback lookup.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
	GenerationCancelled,
	InvalidPayload,
	NoFallbackAvailable,
	PracticeError,
	ProviderError,
	ProviderQuotaExceeded,
	QUOTA_KIND,
	Unauthenticated,
	describe_error,
)
from ..schemas import GenerationOptions
from ..settings import settings
from ..stores import PresetStore
from ..validation import is_valid_payload, validate_payload
from .practice_provider import ProviderResult
from .quota import QuotaStatus, QuotaTracker, estimate_token_cost

logger = logging.getLogger(__name__)


class GenerationState(str, enum.Enum):
	IDLE = "idle"
	ATTEMPTING = "attempting"
	VALIDATING = "validating"
	RETRYING = "retrying"
	FALLBACK_LOOKUP = "fallback_lookup"
	SUCCEEDED = "succeeded"
	FALLBACK_SUCCEEDED = "fallback_succeeded"
	FAILED = "failed"
	CANCELLED = "cancelled"


TERMINAL_STATES = {
	GenerationState.SUCCEEDED,
	GenerationState.FALLBACK_SUCCEEDED,
	GenerationState.FAILED,
	GenerationState.CANCELLED,
}


class PracticeProvider(Protocol):
	async def generate(self, options: GenerationOptions) -> ProviderResult: ...


class CancelToken:
	"""Cooperative cancellation shared by the control loop and the in-flight call."""

	def __init__(self) -> None:
		self._event = asyncio.Event()

	def cancel(self) -> None:
		self._event.set()

	@property
	def cancelled(self) -> bool:
		return self._event.is_set()

	def raise_if_cancelled(self) -> None:
		if self._event.is_set():
			raise GenerationCancelled()

	async def run(self, awaitable: Awaitable[Any]) -> Any:
		"""Await `awaitable`, aborting it as soon as the token is cancelled."""
		if self._event.is_set():
			if asyncio.iscoroutine(awaitable):
				awaitable.close()
			raise GenerationCancelled()
		task = asyncio.ensure_future(awaitable)
		waiter = asyncio.ensure_future(self._event.wait())
		try:
			await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
		except asyncio.CancelledError:
			# the caller itself was cancelled; take the in-flight call down with it
			task.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await task
			raise
		finally:
			waiter.cancel()
		if self._event.is_set():
			task.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await task
			raise GenerationCancelled()
		return task.result()


@dataclass
class GenerationResult:
	success: bool
	data: Optional[Dict[str, Any]] = None
	used_fallback: bool = False
	error: Optional[str] = None
	error_code: Optional[str] = None
	provider_kind: Optional[str] = None
	state: GenerationState = GenerationState.IDLE
	attempts: int = 0
	quota: Optional[QuotaStatus] = None
	error_title: Optional[str] = None
	error_action: Optional[str] = None

	@property
	def cancelled(self) -> bool:
		return self.state == GenerationState.CANCELLED

	@property
	def quota_warning(self) -> bool:
		return self.quota is not None and not self.quota.has_enough


@dataclass
class _Run:
	state: GenerationState = GenerationState.IDLE
	attempts: int = 0

	def enter(self, state: GenerationState) -> None:
		if self.state in TERMINAL_STATES:
			raise RuntimeError(f"generation already finished in state {self.state.value}")
		self.state = state


def _now_ms() -> int:
	return int(time.time() * 1000)


class GenerationOrchestrator:
	def __init__(
		self,
		provider: PracticeProvider,
		presets: PresetStore,
		quota: Optional[QuotaTracker] = None,
		*,
		max_retries: Optional[int] = None,
		backoff_seconds: Optional[float] = None,
		rng: Optional[random.Random] = None,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
		clock_ms: Callable[[], int] = _now_ms,
	) -> None:
		self.provider = provider
		self.presets = presets
		self.quota = quota
		self.max_retries = max_retries if max_retries is not None else settings.generation_max_retries
		self.backoff_seconds = (
			backoff_seconds if backoff_seconds is not None else settings.generation_retry_backoff_ms / 1000
		)
		self.rng = rng or random.Random()
		self._sleep = sleep
		self._clock_ms = clock_ms

	def _check_quota(self, user_id: str, estimate: int) -> Optional[QuotaStatus]:
		if self.quota is None:
			return None
		try:
			return self.quota.check_availability(user_id, estimate)
		except SQLAlchemyError:
			logger.exception("Quota lookup failed for %s, generating without a quota check", user_id)
			return None

	def _record_usage(self, user_id: str, tokens: int) -> None:
		if self.quota is None:
			return
		try:
			self.quota.record_usage(user_id, tokens)
		except SQLAlchemyError:
			logger.exception("Could not record %d tokens for %s", tokens, user_id)

	async def generate(
		self,
		user_id: Optional[str],
		options: GenerationOptions,
		cancel_token: Optional[CancelToken] = None,
	) -> GenerationResult:
		run = _Run()
		if not user_id:
			run.enter(GenerationState.FAILED)
			return self._failure(run, Unauthenticated())
		token = cancel_token or CancelToken()
		quota_status: Optional[QuotaStatus] = None
		try:
			estimate = estimate_token_cost(options.module, options.difficulty)
			quota_status = self._check_quota(user_id, estimate)
			if quota_status is not None and not quota_status.has_enough:
				logger.warning(
					"User %s has %d tokens left today, %s generation is estimated at %d",
					user_id, quota_status.remaining, options.module, estimate,
				)
			token.raise_if_cancelled()

			last_error: Optional[PracticeError] = None
			for attempt in range(1, self.max_retries + 1):
				run.enter(GenerationState.ATTEMPTING)
				run.attempts = attempt
				try:
					produced = await token.run(self.provider.generate(options))
					run.enter(GenerationState.VALIDATING)
					payload = validate_payload(options.module, produced.payload)
				except ProviderQuotaExceeded as err:
					logger.warning("Provider quota exceeded on attempt %d, skipping retries", attempt)
					last_error = err
					break
				except (ProviderError, InvalidPayload) as err:
					logger.warning("Generation attempt %d/%d failed: %s", attempt, self.max_retries, err.message)
					last_error = err
				except GenerationCancelled:
					raise
				except Exception as err:
					logger.exception("Unexpected provider failure on attempt %d", attempt)
					last_error = ProviderError(str(err))
				else:
					run.enter(GenerationState.SUCCEEDED)
					self._record_usage(user_id, produced.tokens_used or estimate)
					return GenerationResult(
						success=True,
						data=payload,
						state=run.state,
						attempts=run.attempts,
						quota=quota_status,
					)
				if attempt < self.max_retries:
					run.enter(GenerationState.RETRYING)
					await token.run(self._sleep(self.backoff_seconds))

			token.raise_if_cancelled()
			run.enter(GenerationState.FALLBACK_LOOKUP)
			return self._fallback(run, options.module, last_error, quota_status)
		except GenerationCancelled as err:
			logger.info("Generation for %s cancelled after %d attempt(s)", user_id, run.attempts)
			run.enter(GenerationState.CANCELLED)
			return self._failure(run, err, quota=quota_status)

	def _fallback(
		self,
		run: _Run,
		module: str,
		cause: Optional[PracticeError],
		quota_status: Optional[QuotaStatus],
	) -> GenerationResult:
		provider_kind = QUOTA_KIND if isinstance(cause, ProviderQuotaExceeded) else getattr(cause, "kind", None)
		try:
			presets = self.presets.published_presets(module)
		except SQLAlchemyError:
			logger.exception("Fallback preset lookup failed for %s", module)
			presets = []
		valid = [p for p in presets if is_valid_payload(module, p.payload)]
		if not valid:
			logger.error("Generation failed and no valid fallback preset exists for %s", module)
			run.enter(GenerationState.FAILED)
			return self._failure(run, NoFallbackAvailable(module), provider_kind=provider_kind, quota=quota_status)

		preset = self.rng.choice(valid)
		logger.info("Using fallback preset %s (%s) for %s", preset.id, preset.topic, module)
		data = dict(preset.payload)
		data.update({
			"testId": f"fallback-{preset.id}-{self._clock_ms()}",
			"topic": preset.topic,
			"isFallback": True,
		})
		run.enter(GenerationState.FALLBACK_SUCCEEDED)
		return GenerationResult(
			success=True,
			data=data,
			used_fallback=True,
			provider_kind=provider_kind,
			state=run.state,
			attempts=run.attempts,
			quota=quota_status,
		)

	@staticmethod
	def _failure(
		run: _Run,
		err: PracticeError,
		*,
		provider_kind: Optional[str] = None,
		quota: Optional[QuotaStatus] = None,
	) -> GenerationResult:
		descriptor = describe_error(err.error_code, provider_kind)
		return GenerationResult(
			success=False,
			error=descriptor.description,
			error_title=descriptor.title,
			error_action=descriptor.action,
			error_code=err.error_code,
			provider_kind=provider_kind,
			state=run.state,
			attempts=run.attempts,
			quota=quota,
		)
