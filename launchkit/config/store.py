# launchkit/config/store.py
from __future__ import annotations

import logging
from typing import Any, Callable

from .types import ConfigProvider, ChangeListener, Validator

logger = logging.getLogger(__name__)

__all__ = ["ConfigStore", "deepMerge"]



def deepMerge(first: Any, second: Any) -> Any:
    """
    Returns a new value where keys from `second` override/extend `first`.
    Only merges recursively when BOTH sides are dicts; for everything else
    (lists, strings, numbers, booleans, null) `second` replaces `first`.
    """
    if isinstance(first, dict) and isinstance(second, dict):
        out: dict[str, Any] = dict(first)
        for key, value in second.items():
            out[key] = deepMerge(out[key], value) if key in out else value
        return out
    return second



class ConfigStore:
    """
    Layered config store:
      - read: first hit from the topmost layer down
      - write: dispatch to a named layer ("instance", "user", "runtime"...)
      - validate: on set(), validate the *effective* merged document and
        roll the write back if validation fails

    Layers are given bottom to top as (name, provider) pairs.
    """

    def __init__(
        self,
        *,
        namespace: str,
        layers: list[tuple[str, ConfigProvider]],
        validator: Validator | None = None,
    ):
        if not layers:
            raise ValueError(f"ConfigStore '{namespace}' needs at least one layer")
        self.namespace = namespace
        self._validator = validator
        self._layers = list(layers)
        self._byName: dict[str, ConfigProvider] = {}
        for name, provider in self._layers:
            if name in self._byName:
                raise ValueError(f"Duplicate layer '{name}' in ConfigStore '{namespace}'")
            self._byName[name] = provider
        self._listeners: list[ChangeListener] = []

    # ----- Helpers -----

    def layer(self, name: str) -> ConfigProvider:
        try:
            return self._byName[name]
        except KeyError:
            raise KeyError(f"No layer named '{name}' in {self.namespace}") from None

    def merged(self) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        # Bottom to top
        for _name, provider in self._layers:
            merged = deepMerge(merged, provider.to_dict())
        return merged

    def get(self, key: str, default: Any = None) -> Any:
        for _name, provider in reversed(self._layers): # Topmost first precedence
            value = provider.get(key)
            if value is not None:
                return value
        return default

    def set(self, key: str, value: Any, *, target: str, actor: str = "system") -> None:
        oldTargetValue = self.layer(target).get(key)
        oldValue = self.get(key)
        provider = self.layer(target)
        provider.set(key, value)

        if self._validator is not None:
            try:
                self._validator(self.merged())
            except Exception:
                # rollback (None deletes the key again)
                provider.set(key, oldTargetValue)
                raise

        newValue = self.get(key)
        if oldValue != newValue:
            context = {"namespace": self.namespace, "actor": actor, "target": target}
            for fn in list(self._listeners):
                try:
                    fn(key, oldValue, newValue, context)
                except Exception:
                    logger.exception("Config listener failed for '%s' in %s", key, self.namespace)

    def save(self, target: str) -> None:
        self.layer(target).save()

    def subscribe(self, fn: ChangeListener) -> Callable[[], None]:
        self._listeners.append(fn)
        def _unsub() -> None:
            try:
                self._listeners.remove(fn)
            except ValueError:
                pass
        return _unsub

    def snapshot(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "layers": [name for name, _provider in self._layers],
            "values": self.merged(),
        }
