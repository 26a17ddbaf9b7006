"""
Application-specific exception classes.

Provider and validation failures are raised inside the generation pipeline and
caught by the orchestrator; only structured results cross the HTTP boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class PracticeError(Exception):
	"""Base exception class for practice-service errors."""

	def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
		super().__init__(message)
		self.message = message
		self.error_code = error_code or self.__class__.__name__
		self.details = details or {}


class Unauthenticated(PracticeError):
	def __init__(self, message: str = "Not authenticated", **kwargs):
		super().__init__(message, error_code="UNAUTHENTICATED", **kwargs)


class ProviderQuotaExceeded(PracticeError):
	"""Raised when the generation provider reports an exhausted quota. Not retried."""

	def __init__(self, message: str = "Provider quota exceeded", **kwargs):
		super().__init__(message, error_code="QUOTA_EXCEEDED", **kwargs)


class ProviderError(PracticeError):
	"""Raised for transient provider failures (network, 5xx, empty output)."""

	def __init__(self, message: str, status_code: Optional[int] = None, kind: str = "unknown", **kwargs):
		super().__init__(message, error_code="PROVIDER_ERROR", **kwargs)
		self.status_code = status_code
		self.kind = kind


class InvalidPayload(PracticeError):
	"""Raised when a generated payload fails structural validation."""

	def __init__(self, message: str, module: Optional[str] = None, **kwargs):
		super().__init__(message, error_code="INVALID_PAYLOAD", **kwargs)
		self.module = module


class NoFallbackAvailable(PracticeError):
	def __init__(self, module: str, **kwargs):
		super().__init__(f"No valid fallback preset for module {module}", error_code="NO_FALLBACK", **kwargs)
		self.module = module


class NoTestsAvailable(PracticeError):
	"""Raised when no published, ready test exists for the request."""

	def __init__(self, module: str, topic: Optional[str] = None, **kwargs):
		message = f"No tests available for module {module}"
		if topic:
			message += f" and topic {topic!r}"
		super().__init__(message, error_code="NO_TESTS", **kwargs)
		self.module = module
		self.topic = topic


class GenerationCancelled(PracticeError):
	"""Raised internally when a cancellation is observed. Not an error for the user."""

	def __init__(self, message: str = "Generation cancelled", **kwargs):
		super().__init__(message, error_code="CANCELLED", **kwargs)


# ---- provider error classification ----

QUOTA_KIND = "quota"


def classify_provider_error(status_code: Optional[int], body: str = "") -> str:
	"""Map a provider failure onto a coarse kind used for retry and display decisions."""
	text = (body or "").lower()
	# Gemini reports both per-minute rate limits and daily quota as 429 RESOURCE_EXHAUSTED
	if status_code == 429 or "resource_exhausted" in text or "quota" in text:
		return QUOTA_KIND
	if "rate limit" in text or "too many requests" in text:
		return "rate_limited"
	if "api key" in text and ("not valid" in text or "invalid" in text or "api_key_invalid" in text):
		return "invalid_key"
	if status_code == 403 or "permission_denied" in text:
		return "permission_denied"
	if status_code == 401 or "unauthorized" in text:
		return "unauthorized"
	if status_code is None:
		return "network"
	return "unknown"


@dataclass(frozen=True)
class ErrorDescriptor:
	kind: str
	title: str
	description: str
	action: Optional[str] = None


_DESCRIPTORS = {
	"try_again": ErrorDescriptor(
		"try_again",
		"Could not generate a test",
		"The AI service is unavailable and no fallback test could be served. Please try again later.",
	),
	"credentials": ErrorDescriptor(
		"credentials",
		"API quota or key problem",
		"Your Gemini API key is missing, invalid or out of quota. Add your own API key in Settings.",
		action="/settings",
	),
	"no_content": ErrorDescriptor(
		"no_content",
		"No tests yet",
		"No practice tests exist for this module yet. Check back once new content has been published.",
	),
	"cancelled": ErrorDescriptor("cancelled", "Cancelled", "Generation was cancelled."),
	"unauthenticated": ErrorDescriptor(
		"unauthenticated",
		"Not signed in",
		"Please sign in again and retry.",
		action="/auth/token",
	),
}

_CREDENTIAL_KINDS = {QUOTA_KIND, "invalid_key", "permission_denied", "unauthorized"}


def describe_error(error_code: Optional[str], provider_kind: Optional[str] = None) -> ErrorDescriptor:
	"""Pick the single user-facing message for a failed generation or selection."""
	if error_code == "CANCELLED":
		return _DESCRIPTORS["cancelled"]
	if error_code == "UNAUTHENTICATED":
		return _DESCRIPTORS["unauthenticated"]
	if error_code == "NO_TESTS":
		return _DESCRIPTORS["no_content"]
	if provider_kind in _CREDENTIAL_KINDS:
		return _DESCRIPTORS["credentials"]
	return _DESCRIPTORS["try_again"]
