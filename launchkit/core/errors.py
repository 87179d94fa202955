# launchkit/core/errors.py
from __future__ import annotations

__all__ = ["LauncherError"]



class LauncherError(RuntimeError):
    """
    Base class for every error launchkit raises on purpose.

    Subclasses attach the context a front end needs to render an actionable
    message (which manifest, which task, which placeholder...). `context()`
    collects those attributes into a plain dict for logging.
    """

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self._context = {key: value for key, value in context.items() if value is not None}

    def context(self) -> dict[str, object]:
        return dict(self._context)
