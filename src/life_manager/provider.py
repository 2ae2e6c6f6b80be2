from typing import Protocol, runtime_checkable


@runtime_checkable
class LLMProvider(Protocol):
    async def complete(
        self,
        system_prompt: str,
        messages: list[dict],
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Return the model's text reply.

        Raises ``BackendUnavailable`` once retries are exhausted or the request
        is rejected.
        """
        ...


def create_provider(provider_name: str, api_key: str) -> LLMProvider | None:
    """Factory: create an LLMProvider by name. ``none`` disables the model."""
    name = provider_name.strip().lower()
    if name == "none":
        return None
    if name == "anthropic":
        from life_manager.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key)
    if name == "openai":
        from life_manager.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(api_key)
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'anthropic', 'openai', 'none'")
