"""OpenAI chat client used to write conversational replies."""

import os
from typing import Any, Protocol

from openai import APIError, OpenAI, RateLimitError

from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 500


class ReplyGenerator(Protocol):
    """Text generation collaborator: system prompt + history -> reply."""

    def generate(self, system_prompt: str, messages: list[dict[str, str]]) -> str: ...


class OpenAIReplyGenerator:
    """ReplyGenerator backed by OpenAI chat completions.

    Config is read at call time so a missing key fails the reply, not the
    process start.
    """

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self._api_key = api_key
        self._model = model
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            api_key = self._api_key or os.environ.get("OPENAI_API_KEY", "")
            if not api_key:
                raise RuntimeError("Missing OpenAI config: OPENAI_API_KEY required")
            self._client = OpenAI(api_key=api_key)
        return self._client

    @property
    def model(self) -> str:
        return self._model or os.environ.get("OPENAI_MODEL", DEFAULT_MODEL)

    def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> str:
        """Generate a reply.

        Args:
            system_prompt: Instructions and retrieved context.
            messages: Chat history as {"role", "content"} dicts, oldest first.
            max_tokens: Completion budget.

        Returns:
            Reply text (stripped; may be empty).

        Raises:
            RuntimeError: If OPENAI_API_KEY is missing.
            openai.APIError: If the API call fails.
        """
        client = self._get_client()
        full_messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            *messages,
        ]

        try:
            response = client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=full_messages,
            )
        except RateLimitError:
            logger.warning("openai rate limited", extra={"extra_fields": safe_log_context(model=self.model)})
            raise
        except APIError as e:
            logger.error(
                "openai api error",
                extra={"extra_fields": safe_log_context(model=self.model, error_type=type(e).__name__)},
            )
            raise

        usage = getattr(response, "usage", None)
        logger.info(
            "reply generated",
            extra={
                "extra_fields": safe_log_context(
                    model=self.model,
                    history_len=len(messages),
                    prompt_tokens=getattr(usage, "prompt_tokens", None),
                    completion_tokens=getattr(usage, "completion_tokens", None),
                )
            },
        )
        return (response.choices[0].message.content or "").strip()
