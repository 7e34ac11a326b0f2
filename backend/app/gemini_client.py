from __future__ import annotations
import logging
import httpx
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence
from .errors import UpstreamModelError
from .settings import settings

logger = logging.getLogger(__name__)

# Conversation roles -> Gemini / OpenAI-style roles
_GEMINI_ROLES = {"student": "user", "coach": "model"}
_OPENAI_ROLES = {"student": "user", "coach": "assistant"}


def _is_retryable(err: Exception) -> bool:
	if isinstance(err, (httpx.TimeoutException, httpx.TransportError)):
		return True
	if isinstance(err, httpx.HTTPStatusError):
		return err.response.status_code == 429 or err.response.status_code >= 500
	return False


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None, timeout: Optional[float] = None) -> None:
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
		timeout = timeout if timeout is not None else settings.llm_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._fallback_enabled = bool(settings.openrouter_api_key)
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=timeout)

	async def chat(self, system_prompt: str, turns: Sequence[Mapping[str, Any]]) -> str:
		"""Send a system prompt plus the ordered turn history; return the raw reply text."""
		contents = [
			{"role": _GEMINI_ROLES.get(str(t.get("role")), "user"), "parts": [{"text": str(t.get("content", ""))}]}
			for t in turns
		]
		payload: Dict[str, Any] = {
			"systemInstruction": {"parts": [{"text": system_prompt}]},
			"contents": contents,
			"generationConfig": {"maxOutputTokens": settings.llm_max_output_tokens},
		}
		messages = [{"role": "system", "content": system_prompt}] + [
			{"role": _OPENAI_ROLES.get(str(t.get("role")), "user"), "content": str(t.get("content", ""))}
			for t in turns
		]
		return await self._post_payload(payload, fallback_messages=messages)

	async def generate(self, prompt: str) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		return await self._post_payload(payload, fallback_messages=[{"role": "user", "content": prompt}])

	async def _post_payload(self, payload: Dict[str, Any], *, fallback_messages: List[Dict[str, str]]) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except (httpx.HTTPStatusError, httpx.RequestError) as err:
			last_error = err
		if last_error is None:
			try:
				data = r.json()
				return data["candidates"][0]["content"]["parts"][0]["text"]
			except Exception:
				last_error = RuntimeError(f"Unexpected Gemini response: {r.text[:500]}")
		logger.warning("Gemini call failed (%s): %s", type(last_error).__name__, last_error)
		if not self._fallback_enabled:
			raise UpstreamModelError("The writing coach is unavailable right now. Please try again.", retryable=_is_retryable(last_error)) from last_error
		return await self._fallback_generate(fallback_messages, last_error)

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, messages: List[Dict[str, str]], primary_error: Exception) -> str:
		if not self._fallback_client or not self._openrouter_api_key:
			raise UpstreamModelError("Fallback requested but OpenRouter is not configured") from primary_error
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": messages,
		}
		try:
			r = await self._fallback_client.post(
				self._openrouter_base_url,
				headers=headers,
				json=payload,
			)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except Exception as fallback_err:
			logger.warning("OpenRouter fallback failed: %s", fallback_err)
			raise UpstreamModelError(
				"The writing coach is unavailable right now. Please try again.",
				retryable=_is_retryable(primary_error) or _is_retryable(fallback_err),
			) from fallback_err


async def get_coach_model() -> AsyncIterator[GeminiClient]:
	"""Request-scoped model client; tests override this dependency with a fake."""
	try:
		client = GeminiClient()
	except ValueError as err:
		raise UpstreamModelError(str(err)) from err
	try:
		yield client
	finally:
		await client.aclose()


async def get_grader_model() -> AsyncIterator[GeminiClient]:
	try:
		client = GeminiClient(model=settings.gemini_model_grader or settings.gemini_model)
	except ValueError as err:
		raise UpstreamModelError(str(err)) from err
	try:
		yield client
	finally:
		await client.aclose()


async def get_optional_coach_model() -> AsyncIterator[Optional[GeminiClient]]:
	"""Like ``get_coach_model`` but yields None when no model is configured."""
	try:
		client = GeminiClient()
	except ValueError:
		yield None
		return
	try:
		yield client
	finally:
		await client.aclose()
