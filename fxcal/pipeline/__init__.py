"""
Pipeline utilities for the calibrate -> derive workflow.

Submodules are imported lazily so tooling can load the schema without
pulling in torch model code.
"""

from importlib import import_module
from types import ModuleType
from typing import Any

__all__ = (
    "calib_collect",
    "calib_params",
    "calib_schema",
)


def __getattr__(name: str) -> ModuleType:
    if name in __all__:
        module = import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def __dir__() -> Any:
    return sorted(list(globals().keys()) + list(__all__))
