"""Local text-generation backend: resources fetched through ResilientFetcher, run with transformers."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Any

from loguru import logger

from lingoworker.config.schema import WorkerConfig
from lingoworker.fetch import ResilientFetcher
from lingoworker.rpc.protocol import GenerateOptions
from lingoworker.utils.exceptions import InitializationFailure, TransportFailure
from lingoworker.worker.prompts import (
    chat_messages,
    extract_assistant_response,
    extract_generated_text,
    plain_prompt,
)

HF_RESOLVE_URL = "https://huggingface.co/{model}/resolve/main/{filename}"

# Tokenizers ship either tokenizer.json or vocab/merges; generation_config is advisory.
OPTIONAL_FILES = frozenset({"generation_config.json", "vocab.json", "merges.txt", "tokenizer.json"})


class LocalModelBackend:
    """Downloads a chat model's files once and serves generations from a pipeline."""

    def __init__(self, settings: WorkerConfig, fetcher: ResilientFetcher):
        self.settings = settings
        self.fetcher = fetcher
        self._pipeline: Any = None
        self._lock = threading.Lock()

    @property
    def model_dir(self) -> Path:
        return self.settings.cache_path / self.settings.model.replace("/", "--")

    async def fetch_resources(self) -> Path:
        target = self.model_dir
        for filename in self.settings.model_files:
            url = HF_RESOLVE_URL.format(model=self.settings.model, filename=filename)
            try:
                await self.fetcher.download(url, target / filename)
            except TransportFailure as e:
                if filename in OPTIONAL_FILES:
                    logger.warning("Skipping optional model file {}: {}", filename, e.message)
                    continue
                raise
        return target

    def _build_pipeline(self, model_dir: Path) -> Any:
        from transformers import pipeline

        return pipeline("text-generation", model=str(model_dir))

    async def load(self) -> None:
        if self._pipeline is not None:
            return
        logger.info("Loading model {}", self.settings.model)
        model_dir = await self.fetch_resources()
        try:
            self._pipeline = await asyncio.to_thread(self._build_pipeline, model_dir)
        except ImportError as e:
            raise InitializationFailure("text model", f"transformers is not installed ({e})") from e
        logger.info("Model {} ready", self.settings.model)

    def _format_prompt(self, message: str, language: str) -> str:
        tokenizer = getattr(self._pipeline, "tokenizer", None)
        if tokenizer is not None and getattr(tokenizer, "chat_template", None):
            prompt = tokenizer.apply_chat_template(
                chat_messages(message, language),
                tokenize=False,
                add_generation_prompt=True,
            )
            if not isinstance(prompt, str):
                raise TypeError("Chat template did not return a string")
            return prompt
        return plain_prompt(message, language)

    def _generate_sync(self, message: str, language: str, options: GenerateOptions) -> str:
        prompt = self._format_prompt(message, language)
        with self._lock:
            result = self._pipeline(
                prompt,
                max_new_tokens=options.max_new_tokens,
                temperature=options.temperature,
                do_sample=options.do_sample,
            )
        generated = extract_generated_text(result)
        if not generated:
            raise RuntimeError("Failed to extract generated text from result")
        return extract_assistant_response(generated, prompt)

    async def generate(self, message: str, language: str, options: GenerateOptions) -> str:
        if self._pipeline is None:
            raise RuntimeError("model not loaded")
        return await asyncio.to_thread(self._generate_sync, message, language, options)

    async def aclose(self) -> None:
        await self.fetcher.aclose()
