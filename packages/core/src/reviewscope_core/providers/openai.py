from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from reviewscope_core.providers.base import BaseProvider, ChatResponse


class OpenAIProvider(BaseProvider):
    NAME = "openai"
    # Lower than Anthropic's to lean toward deterministic, structured JSON.
    TEMPERATURE = 0.2

    def __init__(self, api_key: str):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. "
                "Install it with: pip install 'reviewscope[openai]'"
            )
        self.client = _OpenAI(api_key=api_key)

    def _call_api(self, messages, model, temperature, response_format) -> ChatResponse:
        kwargs = {}
        if response_format == "json":
            kwargs["response_format"] = {"type": "json_object"}
        response = self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=self.MAX_TOKENS,
            **kwargs,
        )
        usage = {}
        if response.usage is not None:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }
        return ChatResponse(content=response.choices[0].message.content or "", usage=usage)
