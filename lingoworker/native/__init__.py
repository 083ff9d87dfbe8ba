"""Native module loading and capability contracts."""

from lingoworker.native.contract import (
    LANGUAGE_CONTRACT,
    PREPROCESS_CONTRACT,
    CapabilityContract,
    ModuleHandle,
    OperationSpec,
)
from lingoworker.native.loader import ModuleLoader, import_initializer

__all__ = [
    "CapabilityContract",
    "ModuleHandle",
    "OperationSpec",
    "LANGUAGE_CONTRACT",
    "PREPROCESS_CONTRACT",
    "ModuleLoader",
    "import_initializer",
]
