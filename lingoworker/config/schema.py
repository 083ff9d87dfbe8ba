"""Configuration schema using Pydantic.

Single data model and defaults for lingoworker, persisted to ~/.lingoworker/config.json.
"""

import sys
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FetchConfig(BaseModel):
    """Resilient fetch configuration."""
    restricted_hosts: list[str] = Field(default_factory=lambda: ["huggingface.co"])
    # Origins that already serve restricted content without indirection.
    mirror_hosts: list[str] = Field(default_factory=lambda: ["cdn.jsdelivr.net"])
    # Tried in order; the percent-encoded target URL is appended to each prefix.
    proxy_candidates: list[str] = Field(
        default_factory=lambda: [
            "https://api.allorigins.win/raw?url=",
            "https://corsproxy.io/?",
            "https://api.codetabs.com/v1/proxy?quest=",
        ]
    )
    timeout: float = 30.0
    user_agent: str = "lingoworker/0.1"


class WorkerConfig(BaseModel):
    """Inference worker configuration."""
    python: str = Field(default_factory=lambda: sys.executable)
    backend: Literal["transformers", "litellm"] = "transformers"
    model: str = "Qwen/Qwen1.5-0.5B-Chat"
    cache_dir: str = "~/.lingoworker/models"
    model_files: list[str] = Field(
        default_factory=lambda: [
            "config.json",
            "generation_config.json",
            "tokenizer.json",
            "tokenizer_config.json",
            "vocab.json",
            "merges.txt",
            "model.safetensors",
        ]
    )
    request_timeout: float | None = None  # None = wait indefinitely
    load_timeout: float | None = None
    max_new_tokens: int = 150
    temperature: float = 0.7
    do_sample: bool = True
    api_key: str = ""  # litellm backend only
    api_base: str | None = None  # litellm backend only

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser()


class ModulesConfig(BaseModel):
    """Import paths of the native modules."""
    language: str = "lingoworker.native.multilingual"
    preprocess: str = "lingoworker.native.preprocess"


class LoggingConfig(BaseModel):
    """Log sink configuration."""
    level: str = "INFO"
    file: bool = True


class Settings(BaseSettings):
    """Root configuration for lingoworker."""
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    modules: ModulesConfig = Field(default_factory=ModulesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="LINGOWORKER_",
        env_nested_delimiter="__",
    )
