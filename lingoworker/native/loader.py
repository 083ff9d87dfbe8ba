"""Lazy, single-flight loader for native modules."""

from __future__ import annotations

import asyncio
import importlib
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from lingoworker.native.contract import CapabilityContract, ModuleHandle
from lingoworker.utils.exceptions import InitializationFailure, ValidationFailure
from lingoworker.utils.singleflight import SingleFlight

Initializer = Callable[[], Awaitable[Any]]
Validator = Callable[[Any], ModuleHandle]


def import_initializer(module_name: str, *, start_hook: str = "init") -> Initializer:
    """
    Build an initializer that imports ``module_name`` off the event loop.

    When the imported module exposes a ``start_hook`` callable it is invoked
    once after import, mirroring a native build's start function.
    """

    async def _initialize() -> Any:
        module = await asyncio.to_thread(importlib.import_module, module_name)
        hook = getattr(module, start_hook, None)
        if callable(hook):
            await asyncio.to_thread(hook)
        return module

    return _initialize


class ModuleLoader:
    """Obtains a native module once and certifies it before releasing a handle."""

    def __init__(self, initializer: Initializer, validator: Validator | CapabilityContract, *, name: str | None = None):
        if isinstance(validator, CapabilityContract):
            self.name = name or validator.name
            validator = validator.validate
        else:
            self.name = name or getattr(validator, "__name__", "native")
        self._initializer = initializer
        self._validator = validator
        self._flight: SingleFlight[ModuleHandle] = SingleFlight(self._load_once)

    @classmethod
    def for_module(cls, module_name: str, contract: CapabilityContract) -> ModuleLoader:
        return cls(import_initializer(module_name), contract, name=contract.name)

    @property
    def initializer_calls(self) -> int:
        return self._flight.calls

    @property
    def loaded(self) -> bool:
        """True once a validated handle is available; a cached failure is not loaded."""
        return self._flight.succeeded

    async def _load_once(self) -> ModuleHandle:
        logger.info("Initializing native module {}", self.name)
        try:
            exports = await self._initializer()
        except Exception as e:
            logger.error("Native module {} failed to initialize: {}", self.name, e)
            raise InitializationFailure(f"native module '{self.name}'", str(e) or type(e).__name__) from e
        try:
            handle = self._validator(exports)
        except ValidationFailure as e:
            logger.error("Native module {} failed validation: {}", self.name, e.message)
            raise
        if not isinstance(handle, ModuleHandle):
            raise ValidationFailure(self.name, ["validated handle"], [type(handle).__name__])
        logger.info("Native module {} ready ({} operations)", self.name, len(handle.operations))
        return handle

    async def load(self) -> ModuleHandle:
        """Return the validated handle, initializing on first call only."""
        return await self._flight.run()
