from __future__ import annotations

from reviewscope_core.providers.base import BaseProvider, ChatResponse


class AnthropicProvider(BaseProvider):
    NAME = "anthropic"
    # Slightly higher than OpenAI's for more natural phrasing in comments.
    TEMPERATURE = 0.3

    def __init__(self, api_key: str):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'reviewscope[anthropic]'"
            )
        self.client = Anthropic(api_key=api_key)

    def _call_api(self, messages, model, temperature, response_format) -> ChatResponse:
        # __init__ already validated the package is installed.
        from anthropic.types import TextBlock

        system, conversation = self.split_system(messages)
        if response_format == "json":
            system = (system + "\n\n" if system else "") + "Respond with a single JSON object and nothing else."
        response = self.client.messages.create(
            model=model,
            system=system,
            messages=conversation,
            temperature=temperature,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }
        return ChatResponse(content="".join(text_blocks).strip(), usage=usage)
