"""
LLM Client - completion providers behind one narrow interface.

CompletionProvider.complete(system_prompt, message, model, timeout) -> str

The concrete provider wraps the OpenAI SDK (AsyncOpenAI) pointed at any
OpenAI-compatible chat completions API (OpenRouter by default). SDK and
transport errors are translated into the provider error taxonomy:

- non-success HTTP status / connection failure -> ProviderUnavailable
- SDK or asyncio timeout                      -> ProviderTimeout
- success with no usable text                  -> ProviderEmptyResponse

Raw provider errors are logged here and never surfaced to callers.
"""

import asyncio
import logging
import re
from typing import Any, Optional

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from errors import ProviderEmptyResponse, ProviderTimeout, ProviderUnavailable

logger = logging.getLogger(__name__)

_THINK_RE = re.compile(r"<think>(.*?)</think>", re.DOTALL)


def _extract_thinking(content: str) -> tuple:
    """Split inline <think>...</think> blocks out of a completion.

    Some reasoning models routed through OpenAI-compatible gateways return
    their thinking inline in the content.

    Returns:
        (clean_content, thinking_text)
    """
    if not content:
        return "", ""
    thinking = "\n".join(_THINK_RE.findall(content)).strip()
    clean = _THINK_RE.sub("", content).strip()
    return clean, thinking


def _completion_text(response: Any) -> Optional[str]:
    """Pull the first choice's message content, or None if absent or not text."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content if isinstance(content, str) else None


class CompletionProvider:
    """Single-request chat completion. Implementations raise ProviderError subclasses."""

    async def complete(
        self,
        system_prompt: str,
        message: str,
        model: str,
        timeout: float,
    ) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class OpenAICompatibleProvider(CompletionProvider):
    """Chat completions over an OpenAI-compatible HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 15.0,
        temperature: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        default_headers: Optional[dict] = None,
    ):
        """
        Args:
            base_url: API root including version (e.g., "https://openrouter.ai/api/v1")
            api_key: Bearer token for the provider
            timeout: Default request timeout in seconds
            temperature: Sampling temperature passed through when set
            http_client: Optional httpx client (tests inject a MockTransport)
            default_headers: Extra headers sent with every request
        """
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self._timeout = timeout
        self._client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key or "not-configured",
            timeout=timeout,
            max_retries=0,  # retries are the caller's decision
            http_client=http_client,
            default_headers=default_headers,
        )

    async def complete(
        self,
        system_prompt: str,
        message: str,
        model: str,
        timeout: Optional[float] = None,
    ) -> str:
        timeout = timeout or self._timeout
        kwargs = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": message},
            ],
            "timeout": timeout,
        }
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature

        try:
            # wait_for cancels the in-flight request, not just the wait
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, APITimeoutError) as e:
            logger.warning(f"Provider timed out after {timeout}s (model={model}): {e}")
            raise ProviderTimeout(model=model) from e
        except APIStatusError as e:
            logger.error(f"Provider returned HTTP {e.status_code} (model={model}): {e.message}")
            raise ProviderUnavailable(model=model) from e
        except APIConnectionError as e:
            logger.error(f"Provider unreachable (model={model}): {e}")
            raise ProviderUnavailable(model=model) from e

        raw = _completion_text(response)
        if raw is None:
            logger.error(f"Provider returned no text content (model={model})")
            raise ProviderEmptyResponse(model=model)

        content, thinking = _extract_thinking(raw)
        if thinking:
            logger.debug(f"Dropped {len(thinking)} chars of inline reasoning (model={model})")
        if not content:
            logger.error(f"Provider returned an empty completion (model={model})")
            raise ProviderEmptyResponse(model=model)
        return content

    async def aclose(self) -> None:
        await self._client.close()


def build_provider(config=None) -> OpenAICompatibleProvider:
    """Provider configured from RuntimeConfig."""
    if config is None:
        from config import runtime_config

        config = runtime_config
    if not config.llm_api_key:
        logger.warning("LLM_API_KEY is not set; provider calls will be rejected upstream")
    return OpenAICompatibleProvider(
        base_url=config.llm_base_url,
        api_key=config.llm_api_key,
        timeout=config.llm_timeout_s,
        temperature=config.llm_temperature,
        default_headers={"X-Title": "Polychat"},
    )
