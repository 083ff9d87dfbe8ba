"""Generation backends the worker can drive."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from lingoworker.config.schema import Settings
from lingoworker.rpc.protocol import GenerateOptions


@runtime_checkable
class GenerationBackend(Protocol):
    """A text generator that must be loaded before use."""

    async def load(self) -> None: ...

    async def generate(self, message: str, language: str, options: GenerateOptions) -> str: ...

    async def aclose(self) -> None: ...


def create_backend(settings: Settings) -> GenerationBackend:
    """Build the backend named by ``worker.backend``."""
    name = settings.worker.backend
    if name == "transformers":
        from lingoworker.fetch import ResilientFetcher
        from lingoworker.worker.local_model import LocalModelBackend

        return LocalModelBackend(settings.worker, ResilientFetcher(settings.fetch))
    if name == "litellm":
        from lingoworker.worker.litellm_backend import LiteLLMBackend

        return LiteLLMBackend(settings.worker)
    raise ValueError(f"Unknown worker backend: {name}")
