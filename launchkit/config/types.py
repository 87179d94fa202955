# launchkit/config/types.py
from __future__ import annotations
from typing import Any, Callable, Protocol, runtime_checkable

__all__ = ["ConfigProvider", "ChangeListener", "Validator"]

# (key, oldValue, newValue, context)
ChangeListener = Callable[[str, Any, Any, dict[str, Any]], None]
Validator = Callable[[dict[str, Any]], Any]



@runtime_checkable
class ConfigProvider(Protocol):
    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any) -> None: ...
    def to_dict(self) -> dict[str, Any]: ...
    def save(self) -> None: ...
