from collections.abc import AsyncIterator

import anthropic
from loguru import logger

from ops_broker.errors import BackendRuntimeFailure


class AnthropicStreamAdapter:
    def __init__(self, client: anthropic.AsyncAnthropic, model: str, max_tokens: int):
        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    async def stream_text(
        self,
        messages: list[dict],
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        """Yield assistant text deltas for the given chat history.

        Non-text events are dropped. Any API error ends the sequence with a single
        BackendRuntimeFailure; fragments yielded before it stay valid. No retries.
        """
        request: dict = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        }
        if system_prompt:
            request["system"] = system_prompt

        logger.debug(f"API stream request: model={self._model}, messages={len(messages)}")
        fragments = 0
        try:
            async with self._client.messages.stream(**request) as stream:
                async for event in stream:
                    if event.type == "content_block_delta" and event.delta.type == "text_delta":
                        fragments += 1
                        yield event.delta.text
        except anthropic.APIError as ex:
            logger.warning(f"API stream failed after {fragments} fragment(s): {type(ex).__name__}: {ex}")
            raise BackendRuntimeFailure(_describe_api_error(ex)) from ex

        logger.debug(f"API stream complete: fragments={fragments}")


def _describe_api_error(ex: anthropic.APIError) -> str:
    if isinstance(ex, anthropic.AuthenticationError):
        return f"Authentication with the API failed: {ex.message}"
    if isinstance(ex, anthropic.APITimeoutError):
        return "Request to the API timed out"
    if isinstance(ex, anthropic.APIConnectionError):
        return f"Could not connect to the API: {ex.message}"
    if isinstance(ex, anthropic.APIStatusError):
        return f"API returned status {ex.status_code}: {ex.message}"
    return f"API error: {ex.message}"
