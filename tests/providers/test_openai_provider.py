import asyncio
import unittest
from types import SimpleNamespace

import httpx
import openai

from life_manager.errors import BackendUnavailable
from life_manager.providers.openai_provider import OpenAIProvider, _to_openai_messages


class ToOpenAIMessagesTests(unittest.TestCase):
    def test_system_prompt_becomes_system_message(self) -> None:
        result = _to_openai_messages("You are helpful.", [])
        self.assertEqual([{"role": "system", "content": "You are helpful."}], result)

    def test_empty_system_prompt_is_omitted(self) -> None:
        result = _to_openai_messages("", [{"role": "user", "content": "hi"}])
        self.assertEqual([{"role": "user", "content": "hi"}], result)

    def test_history_is_kept_in_order(self) -> None:
        result = _to_openai_messages("sys", [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ])
        self.assertEqual(["system", "user", "assistant"], [m["role"] for m in result])


class _FakeCompletions:
    def __init__(self, response=None, error: Exception | None = None):
        self._response = response
        self._error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return self._response


class _FakeClient:
    def __init__(self, response=None, error: Exception | None = None):
        self.chat = SimpleNamespace(completions=_FakeCompletions(response, error))


class OpenAIProviderTests(unittest.TestCase):
    def _make_provider(self, response=None, error: Exception | None = None) -> OpenAIProvider:
        provider = OpenAIProvider.__new__(OpenAIProvider)
        provider._client = _FakeClient(response, error)
        return provider

    def test_complete_returns_message_content(self) -> None:
        response = SimpleNamespace(
            choices=[SimpleNamespace(finish_reason="stop", message=SimpleNamespace(content='{"agents": []}'))]
        )
        provider = self._make_provider(response)

        result = asyncio.run(
            provider.complete("route", [{"role": "user", "content": "hi"}], model="gpt-4o", max_tokens=50, temperature=0)
        )

        self.assertEqual('{"agents": []}', result)
        call = provider._client.chat.completions.calls[0]
        self.assertEqual("system", call["messages"][0]["role"])
        self.assertEqual("gpt-4o", call["model"])

    def test_missing_content_is_empty_string(self) -> None:
        response = SimpleNamespace(choices=[SimpleNamespace(finish_reason="length", message=SimpleNamespace(content=None))])
        provider = self._make_provider(response)
        self.assertEqual("", asyncio.run(provider.complete("", [], model="m", max_tokens=1, temperature=0)))

    def test_api_error_becomes_backend_unavailable(self) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        provider = self._make_provider(error=openai.APIError("bad request", request, body=None))

        with self.assertRaises(BackendUnavailable):
            asyncio.run(provider.complete("", [], model="m", max_tokens=1, temperature=0))


if __name__ == "__main__":
    unittest.main()
