"""Hosted generation backend via LiteLLM."""

from __future__ import annotations

import os
from typing import Any

# Use the bundled model cost map so importing litellm does not hit the network.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from litellm import acompletion

from loguru import logger

from lingoworker.config.schema import WorkerConfig
from lingoworker.rpc.protocol import GenerateOptions
from lingoworker.utils.exceptions import InitializationFailure, sanitize_error_message
from lingoworker.worker.prompts import chat_messages


class LiteLLMBackend:
    """Chat completions against a hosted model; nothing to download."""

    def __init__(self, settings: WorkerConfig):
        self.settings = settings
        self._ready = False

    async def load(self) -> None:
        if not self.settings.model.strip():
            raise InitializationFailure("text model", "worker.model is empty")
        logger.info("Using hosted model {}", self.settings.model)
        self._ready = True

    async def generate(self, message: str, language: str, options: GenerateOptions) -> str:
        if not self._ready:
            raise RuntimeError("model not loaded")
        kwargs: dict[str, Any] = {
            "model": self.settings.model,
            "messages": chat_messages(message, language),
            "max_tokens": max(1, options.max_new_tokens),
            "temperature": options.temperature if options.do_sample else 0.0,
        }
        if self.settings.api_key:
            kwargs["api_key"] = self.settings.api_key
        if self.settings.api_base:
            kwargs["api_base"] = self.settings.api_base
        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            raise RuntimeError(sanitize_error_message(f"LLM call failed: {e}")) from e
        choice = response.choices[0]
        return (choice.message.content or "").strip()

    async def aclose(self) -> None:
        return None
