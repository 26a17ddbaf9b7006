from __future__ import annotations
import logging
from dataclasses import dataclass
import httpx
from typing import Any, Dict, Optional
from .errors import ProviderError, ProviderQuotaExceeded, QUOTA_KIND, classify_provider_error
from .settings import settings

logger = logging.getLogger(__name__)


@dataclass
class GeminiResponse:
	text: str
	tokens_used: int = 0


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		self._client = httpx.AsyncClient(timeout=timeout or settings.gemini_timeout_seconds, transport=transport)

	async def generate(self, prompt: str, *, json_mode: bool = True, temperature: float = 0.7) -> GeminiResponse:
		generation_config: Dict[str, Any] = {"temperature": temperature, "maxOutputTokens": 8192}
		if json_mode:
			generation_config["responseMimeType"] = "application/json"
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": prompt}]}],
			"generationConfig": generation_config,
		}
		return await self._post_payload(payload)

	async def _post_payload(self, payload: Dict[str, Any]) -> GeminiResponse:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			status = http_err.response.status_code
			body = http_err.response.text
			kind = classify_provider_error(status, body)
			logger.warning("Gemini %s returned %s (%s)", self.model, status, kind)
			if kind == QUOTA_KIND:
				raise ProviderQuotaExceeded(f"Gemini quota exceeded ({status})") from http_err
			raise ProviderError(f"Gemini error ({status}): {body[:200]}", status_code=status, kind=kind) from http_err
		except httpx.RequestError as net_err:
			raise ProviderError(f"Gemini request failed: {net_err}", kind="network") from net_err
		try:
			data = r.json()
		except ValueError as err:
			raise ProviderError(f"Unexpected Gemini response: {r.text[:200]}") from err
		usage = data.get("usageMetadata") or {}
		tokens = int(usage.get("promptTokenCount") or 0) + int(usage.get("candidatesTokenCount") or 0)
		try:
			text = data["candidates"][0]["content"]["parts"][0]["text"]
		except (KeyError, IndexError, TypeError):
			finish = None
			try:
				finish = data["candidates"][0].get("finishReason")
			except (KeyError, IndexError, TypeError, AttributeError):
				pass
			if finish == "SAFETY":
				raise ProviderError("Content was filtered by safety settings", kind="safety")
			raise ProviderError("Gemini returned an empty response")
		return GeminiResponse(text=text, tokens_used=tokens)

	async def aclose(self) -> None:
		await self._client.aclose()
