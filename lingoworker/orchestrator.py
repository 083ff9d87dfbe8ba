"""Application context tying the native modules and the inference worker together.

One ``AppContext`` is built at startup and passed to every call site; it owns
the module loaders and the worker channel for the life of the process.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from lingoworker.config.schema import Settings
from lingoworker.native.contract import LANGUAGE_CONTRACT, PREPROCESS_CONTRACT, ModuleHandle
from lingoworker.native.loader import ModuleLoader
from lingoworker.rpc.channel import WorkerChannel
from lingoworker.rpc.protocol import GenerateOptions
from lingoworker.utils.singleflight import SingleFlight

LANGUAGES: dict[str, str] = {
    "en": "English",
    "de": "Deutsch",
    "fr": "Français",
    "it": "Italiano",
    "pt": "Português",
    "hi": "हिन्दी",
    "es": "Español",
    "th": "ไทย",
}


def language_name(code: str) -> str:
    return LANGUAGES.get(code, code.upper())


class TextStats(BaseModel):
    """Statistics record produced by the language module (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    word_count: int
    character_count: int
    character_count_no_spaces: int
    sentence_count: int
    average_word_length: float


@dataclass(slots=True)
class MessageAnalysis:
    language: str
    stats: TextStats | None


@dataclass(slots=True)
class ChatTurn:
    message: str
    reply: str
    language: str
    stats: TextStats | None


@dataclass(slots=True)
class PreprocessedImage:
    data: bytes
    width: int
    height: int
    stats: dict[str, Any]


def parse_text_stats(raw: str) -> TextStats | None:
    """Parse the module's stats JSON; anything malformed yields None."""
    try:
        return TextStats.model_validate(json.loads(raw))
    except (json.JSONDecodeError, TypeError, ValidationError):
        return None


def worker_command(settings: Settings, config_path: Path | None = None) -> list[str]:
    command = [settings.worker.python, "-m", "lingoworker.worker"]
    if config_path is not None:
        command.extend(["--config", str(config_path)])
    return command


class AppContext:
    """Long-lived owner of the native module handles and the worker process."""

    def __init__(
        self,
        settings: Settings,
        *,
        config_path: Path | None = None,
        channel: WorkerChannel | None = None,
        language_loader: ModuleLoader | None = None,
        preprocess_loader: ModuleLoader | None = None,
    ):
        self.settings = settings
        self.language_loader = language_loader or ModuleLoader.for_module(
            settings.modules.language, LANGUAGE_CONTRACT
        )
        self.preprocess_loader = preprocess_loader or ModuleLoader.for_module(
            settings.modules.preprocess, PREPROCESS_CONTRACT
        )
        self.channel = channel or WorkerChannel(
            worker_command(settings, config_path),
            default_timeout=settings.worker.request_timeout,
        )
        self._language: ModuleHandle | None = None
        self._model = SingleFlight(self._load_model, cache_failure=False)

    @property
    def generate_options(self) -> GenerateOptions:
        w = self.settings.worker
        return GenerateOptions(max_new_tokens=w.max_new_tokens, temperature=w.temperature, do_sample=w.do_sample)

    async def start(self) -> ModuleHandle:
        """Obtain the validated language module."""
        self._language = await self.language_loader.load()
        return self._language

    async def _load_model(self) -> None:
        logger.info("Loading chat model in worker...")
        await self.channel.load(timeout=self.settings.worker.load_timeout)
        logger.info("Chat model loaded")

    async def ensure_model(self) -> None:
        """Start the worker and load the model once."""
        await self._model.run()

    def analyze(self, text: str) -> MessageAnalysis:
        if self._language is None:
            return MessageAnalysis(language="en", stats=None)
        language = self._language.detect_language(text)
        stats = parse_text_stats(self._language.get_text_stats(text))
        return MessageAnalysis(language=language, stats=stats)

    async def chat(self, message: str) -> ChatTurn:
        """Analyze ``message`` and ask the worker for a reply in its language."""
        analysis = self.analyze(message)
        await self.ensure_model()
        logger.info("Generating response in {} (detected from input)", language_name(analysis.language))
        reply = await self.channel.generate(message, analysis.language, self.generate_options)
        return ChatTurn(message=message, reply=reply, language=analysis.language, stats=analysis.stats)

    async def preprocess_text(self, text: str) -> list[int]:
        handle = await self.preprocess_loader.load()
        return list(handle.preprocess_text(handle.normalize_text(text)))

    async def preprocess_image(
        self,
        data: bytes,
        source_width: int,
        source_height: int,
        target_width: int,
        target_height: int,
    ) -> PreprocessedImage:
        handle = await self.preprocess_loader.load()
        out = handle.preprocess_image(data, source_width, source_height, target_width, target_height)
        stats = handle.get_preprocess_stats(source_width, target_width)
        return PreprocessedImage(data=bytes(out), width=target_width, height=target_height, stats=dict(stats))

    async def close(self) -> None:
        await self.channel.close()

    async def __aenter__(self) -> AppContext:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
