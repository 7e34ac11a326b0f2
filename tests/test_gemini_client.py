"""Tests for request shaping and error mapping in the Gemini client."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from backend.app.errors import UpstreamModelError
from backend.app.gemini_client import GeminiClient


def _client(handler) -> GeminiClient:
	client = GeminiClient(api_key="test-key", base_url="https://gemini.test/generate")
	client._fallback_enabled = False
	client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
	return client


def _reply(text: str) -> httpx.Response:
	return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


class TestGeminiClient:
	def test_chat_maps_roles_and_system_prompt(self) -> None:
		seen = {}

		def handler(request: httpx.Request) -> httpx.Response:
			seen["body"] = json.loads(request.content)
			seen["key"] = request.url.params.get("key")
			return _reply("Hello Emma! [STEP: 1]")

		client = _client(handler)
		turns = [{"role": "coach", "content": "Hi!"}, {"role": "student", "content": "Hello"}]
		reply = asyncio.run(client.chat("Be kind.", turns))
		assert reply == "Hello Emma! [STEP: 1]"
		assert seen["key"] == "test-key"
		assert seen["body"]["systemInstruction"]["parts"][0]["text"] == "Be kind."
		assert [c["role"] for c in seen["body"]["contents"]] == ["model", "user"]

	@pytest.mark.parametrize("status, retryable", [(503, True), (429, True), (400, False)])
	def test_http_errors(self, status: int, retryable: bool) -> None:
		client = _client(lambda request: httpx.Response(status, json={"error": "nope"}))
		with pytest.raises(UpstreamModelError) as info:
			asyncio.run(client.generate("grade this"))
		assert info.value.retryable is retryable

	def test_timeout_is_retryable(self) -> None:
		def handler(request: httpx.Request) -> httpx.Response:
			raise httpx.ReadTimeout("too slow", request=request)

		with pytest.raises(UpstreamModelError) as info:
			asyncio.run(_client(handler).generate("grade this"))
		assert info.value.retryable is True

	def test_malformed_body_is_not_retryable(self) -> None:
		client = _client(lambda request: httpx.Response(200, json={"candidates": []}))
		with pytest.raises(UpstreamModelError) as info:
			asyncio.run(client.generate("grade this"))
		assert info.value.retryable is False
