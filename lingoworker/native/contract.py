"""Capability contracts for native modules and the validated handles they produce."""

from __future__ import annotations

import inspect
import mmap
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType, ModuleType
from typing import Any

from lingoworker.utils.exceptions import ValidationFailure

MEMORY_KINDS: tuple[type, ...] = (bytearray, memoryview, mmap.mmap)


@dataclass(frozen=True, slots=True)
class OperationSpec:
    """A required export: name plus the number of positional arguments it takes."""

    name: str
    arity: int

    def describe(self) -> str:
        return f"{self.name} (callable/{self.arity})"


def _accepts_arity(fn: Callable[..., Any], arity: int) -> bool:
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        # C builtins may not expose a signature; callability is all we can check.
        return True
    required = 0
    total = 0
    for param in sig.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return arity >= required
        if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            total += 1
            if param.default is inspect.Parameter.empty:
                required += 1
        elif param.kind is inspect.Parameter.KEYWORD_ONLY and param.default is inspect.Parameter.empty:
            return False
    return required <= arity <= total


def _is_memory(value: Any) -> bool:
    if isinstance(value, MEMORY_KINDS):
        return True
    try:
        memoryview(value).release()
    except TypeError:
        return False
    return True


def list_exports(candidate: Any) -> list[str]:
    """Public export names of a module, object or mapping, sorted."""
    if isinstance(candidate, Mapping):
        names = [str(k) for k in candidate.keys()]
    elif isinstance(candidate, ModuleType) and hasattr(candidate, "__all__"):
        names = [str(n) for n in candidate.__all__]
    else:
        names = dir(candidate)
    return sorted(n for n in names if not n.startswith("_"))


def _get_export(candidate: Any, name: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(name)
    return getattr(candidate, name, None)


class ModuleHandle:
    """Validated, immutable view of a native module's operations and memory."""

    __slots__ = ("_contract", "_memory", "_operations")

    def __init__(self, contract: CapabilityContract, memory: Any, operations: Mapping[str, Callable[..., Any]]):
        object.__setattr__(self, "_contract", contract)
        object.__setattr__(self, "_memory", memory)
        object.__setattr__(self, "_operations", MappingProxyType(dict(operations)))

    @property
    def contract(self) -> CapabilityContract:
        return self._contract

    @property
    def memory(self) -> Any:
        return self._memory

    @property
    def operations(self) -> Mapping[str, Callable[..., Any]]:
        return self._operations

    def call(self, name: str, *args: Any) -> Any:
        try:
            fn = self._operations[name]
        except KeyError:
            raise AttributeError(f"{self._contract.name} handle has no operation '{name}'") from None
        return fn(*args)

    def __getattr__(self, name: str) -> Any:
        operations = object.__getattribute__(self, "_operations")
        if name in operations:
            return operations[name]
        raise AttributeError(name)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("ModuleHandle is immutable")

    def __repr__(self) -> str:
        return f"ModuleHandle({self._contract.name!r}, operations={sorted(self._operations)})"


@dataclass(frozen=True, slots=True)
class CapabilityContract:
    """Exports a native module must provide before a handle is released."""

    name: str
    operations: tuple[OperationSpec, ...]
    memory_attr: str = "memory"
    entries: tuple[str, ...] = field(init=False, default=())

    def __post_init__(self) -> None:
        names = [self.memory_attr] + [op.name for op in self.operations]
        object.__setattr__(self, "entries", tuple(names))

    def missing(self, candidate: Any) -> list[str]:
        """Every contract entry the candidate does not satisfy."""
        out: list[str] = []
        memory = _get_export(candidate, self.memory_attr)
        if memory is None or not _is_memory(memory):
            out.append(f"{self.memory_attr} (buffer)")
        for op in self.operations:
            fn = _get_export(candidate, op.name)
            if fn is None or not callable(fn) or not _accepts_arity(fn, op.arity):
                out.append(op.describe())
        return out

    def validate(self, candidate: Any) -> ModuleHandle:
        """Return a handle when every entry is present, else raise ValidationFailure."""
        if candidate is None:
            raise ValidationFailure(self.name, [self.memory_attr] + [op.describe() for op in self.operations], [])
        missing = self.missing(candidate)
        if missing:
            raise ValidationFailure(self.name, missing, list_exports(candidate))
        return ModuleHandle(
            self,
            _get_export(candidate, self.memory_attr),
            {op.name: _get_export(candidate, op.name) for op in self.operations},
        )


PREPROCESS_CONTRACT = CapabilityContract(
    name="preprocess",
    operations=(
        OperationSpec("normalize_text", 1),
        OperationSpec("preprocess_text", 1),
        OperationSpec("preprocess_image", 5),
        OperationSpec("get_preprocess_stats", 2),
    ),
)

LANGUAGE_CONTRACT = CapabilityContract(
    name="multilingual",
    operations=(
        OperationSpec("detect_language", 1),
        OperationSpec("get_text_stats", 1),
        OperationSpec("normalize_text", 2),
    ),
)
