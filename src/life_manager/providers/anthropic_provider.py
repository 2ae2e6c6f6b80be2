import anthropic
from loguru import logger
from tenacity import retry

from life_manager.errors import BackendUnavailable
from life_manager.providers.common import default_retry_kwargs

_RETRYABLE = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
)


class AnthropicProvider:
    def __init__(self, api_key: str):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    @property
    def name(self) -> str:
        return "anthropic"

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
            return await self._create(system_prompt, messages, model, max_tokens, temperature)
        except anthropic.APIError as ex:
            raise BackendUnavailable(f"Anthropic request failed: {ex}") from ex

    @retry(**default_retry_kwargs(_RETRYABLE))
    async def _create(
        self,
        system_prompt: str,
        messages: list[dict],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        logger.debug(f"API request: model={model}, max_tokens={max_tokens}, messages={len(messages)}")
        response = await self._client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=messages,
        )
        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )
        return "".join(block.text for block in response.content if block.type == "text")
