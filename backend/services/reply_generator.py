"""
Reply Generator - one mentor reply per call.

Resolves the system prompt (override first, then the mentor's default),
calls the completion provider once under a bounded timeout and returns the
trimmed text. No retries here.
"""

import asyncio
import logging
import time
from typing import Optional

from errors import ProviderEmptyResponse, ProviderError, ProviderTimeout, ProviderUnavailable
from logging_config import log_llm
from mentors import get_default_prompt

logger = logging.getLogger(__name__)


def resolve_system_prompt(mentor: str, override_prompt: Optional[str] = None) -> str:
    if override_prompt and override_prompt.strip():
        return override_prompt.strip()
    return get_default_prompt(mentor)


class ReplyGenerator:
    def __init__(
        self,
        provider,
        timeout_s: Optional[float] = None,
        default_model: Optional[str] = None,
    ):
        self.provider = provider
        self._timeout_s = timeout_s
        self._default_model = default_model

    @property
    def timeout_s(self) -> float:
        if self._timeout_s is not None:
            return self._timeout_s
        from config import runtime_config

        return runtime_config.llm_timeout_s

    @property
    def default_model(self) -> str:
        if self._default_model:
            return self._default_model
        from config import runtime_config

        return runtime_config.default_chat_model

    async def generate(
        self,
        mentor: str,
        message: str,
        override_prompt: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> str:
        """
        Generate the mentor's reply to a single user message.

        Raises:
            ProviderUnavailable: provider failed or returned an error status
            ProviderTimeout: no answer within timeout_s
            ProviderEmptyResponse: answer carried no text
        """
        system_prompt = resolve_system_prompt(mentor, override_prompt)
        model = model_id or self.default_model
        timeout = self.timeout_s

        log_llm(logger, "start", model=model)
        start = time.monotonic()
        try:
            reply = await asyncio.wait_for(
                self.provider.complete(system_prompt, message, model=model, timeout=timeout),
                timeout=timeout,
            )
        except ProviderError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning(f"Reply generation timed out after {timeout}s (mentor={mentor}, model={model})")
            raise ProviderTimeout(model=model) from e
        except Exception as e:
            logger.error(f"Provider call failed (mentor={mentor}, model={model}): {e}", exc_info=True)
            raise ProviderUnavailable(model=model) from e

        if not isinstance(reply, str) or not reply.strip():
            raise ProviderEmptyResponse(model=model)

        log_llm(logger, "end", model=model, duration=time.monotonic() - start)
        return reply.strip()
