"""Base LLM provider implementing the Template Method pattern.

Every provider exposes the same call contract:
    chat() → _call_with_retry() → _call_api()   ← only this differs per provider

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return a ChatResponse

Retry and backoff live here so the behaviour is identical for every
provider. The returned content is untrusted text; parsing it is the
caller's job (see reviewscope_core.response).
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from reviewscope_core.exceptions import ProviderError

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 4096


@dataclass
class ChatResponse:
    content: str
    usage: dict[str, int] = field(default_factory=dict)


class BaseProvider(ABC):
    NAME: str = ""
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    TEMPERATURE: float = 0.2

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def chat(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float | None = None,
        response_format: str | None = None,
    ) -> ChatResponse:
        """Send a conversation to the model and return its reply.

        ``messages`` use the ``{"role", "content"}`` shape with roles
        ``system``, ``user`` and ``assistant``. ``response_format="json"``
        asks the provider for a JSON object where the API supports it.
        Raises ProviderError once every retry has failed.
        """
        temp = self.TEMPERATURE if temperature is None else temperature
        return self._call_with_retry(messages, model, temp, response_format)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float,
        response_format: str | None,
    ) -> ChatResponse:
        """Make a single API call. Raise on failure; retries happen in the base."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float,
        response_format: str | None,
    ) -> ChatResponse:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        last_error: Exception | None = None
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(messages, model, temperature, response_format)
            except Exception as e:
                last_error = e
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    break
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        raise ProviderError(f"{self.NAME or self.__class__.__name__} call failed: {last_error}") from last_error

    @staticmethod
    def split_system(messages: list[dict[str, str]]) -> tuple[str, list[dict[str, str]]]:
        """Separate system messages from the conversation for APIs that take them apart."""
        system = "\n\n".join(m["content"] for m in messages if m.get("role") == "system")
        rest = [m for m in messages if m.get("role") != "system"]
        return system, rest
