from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable


@runtime_checkable
class RemoteStream(Protocol):
    def stream_text(
        self,
        messages: list[dict],
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        """Yield assistant text fragments for an ordered chat history, oldest first."""
        ...


def create_remote_stream(provider_name: str, api_key: str, *, model: str, max_tokens: int) -> RemoteStream:
    """Factory: create a RemoteStream by provider name."""
    name = provider_name.strip().lower()
    if name == "anthropic":
        import anthropic

        from ops_broker.providers.anthropic_stream import AnthropicStreamAdapter

        client = anthropic.AsyncAnthropic(api_key=api_key or None)
        return AnthropicStreamAdapter(client, model, max_tokens)
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'anthropic'")
