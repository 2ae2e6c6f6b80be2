import openai
from loguru import logger
from tenacity import retry

from life_manager.errors import BackendUnavailable
from life_manager.providers.common import default_retry_kwargs

_RETRYABLE = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
)


def _to_openai_messages(system_prompt: str, messages: list[dict]) -> list[dict]:
    out: list[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    for msg in messages:
        out.append({"role": msg["role"], "content": msg.get("content", "")})
    return out


class OpenAIProvider:
    def __init__(self, api_key: str):
        self._client = openai.AsyncOpenAI(api_key=api_key)

    @property
    def name(self) -> str:
        return "openai"

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict],
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        try:
            return await self._create(_to_openai_messages(system_prompt, messages), model, max_tokens, temperature)
        except openai.APIError as ex:
            raise BackendUnavailable(f"OpenAI request failed: {ex}") from ex

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _create(self, oai_messages: list[dict], model: str, max_tokens: int, temperature: float) -> str:
        logger.debug(f"API request: model={model}, max_tokens={max_tokens}, messages={len(oai_messages)}")
        response = await self._client.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=oai_messages,
        )
        choice = response.choices[0]
        text = choice.message.content or ""
        logger.debug(f"API response: finish_reason={choice.finish_reason}, len={len(text)}")
        return text
