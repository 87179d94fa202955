# launchkit/launch/templates.py
from __future__ import annotations

import re
from collections.abc import Mapping

from launchkit.core.errors import LauncherError

__all__ = ["PLACEHOLDER_RE", "TemplateSubstitutionError", "substitute"]

PLACEHOLDER_RE = re.compile(r"\$\{([A-Za-z0-9_.]+)\}")



class TemplateSubstitutionError(LauncherError):
    """An argument template names a placeholder that has no value."""

    def __init__(self, placeholder: str, manifestId: str | None, *, argument: str | None = None) -> None:
        super().__init__(
            f"No value for ${{{placeholder}}} in launch arguments of '{manifestId}'",
            placeholder=placeholder,
            manifestId=manifestId,
            argument=argument,
        )
        self.placeholder = placeholder
        self.manifestId = manifestId
        self.argument = argument



def substitute(template: str, values: Mapping[str, str | None], *, manifestId: str | None = None) -> str:
    """Replace every `${name}`; unknown or unvalued names raise TemplateSubstitutionError."""
    def _replace(mtch: re.Match[str]) -> str:
        name = mtch.group(1)
        value = values.get(name)
        if value is None:
            raise TemplateSubstitutionError(name, manifestId, argument=template)
        return value

    return PLACEHOLDER_RE.sub(_replace, template)
