# launchkit/core/redaction.py
from __future__ import annotations

import re

__all__ = ["redactText", "redactArguments", "SENSITIVE_FLAGS"]



# Game arguments whose following value is a credential or account identifier
SENSITIVE_FLAGS: frozenset[str] = frozenset({
    "--accessToken",
    "--session",
    "--uuid",
    "--clientId",
    "--xuid",
})

_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # Bearer or Authorization headers
    (re.compile(r"(?iu)(Bearer\s+)[A-Za-z0-9._\-]+"), r"\1***"),
    (re.compile(r"(?iu)(Authorization\s*[:=]\s*)[A-Za-z0-9._\-]+"), r"\1***"),

    # Launch command lines: "--accessToken eyJ..." and friends
    (re.compile(r"""(?u)(--(?:accessToken|session|uuid|clientId|xuid)[\s=]+)(?!\*\*\*)[^\s"']+"""), r"\1***"),

    # Token-style fields in JSON documents
    (re.compile(r'(?iu)("(?:accessToken|access_token|token|clientToken)"\s*:\s*")[^"]+(")'), r"\1***\2"),

    # Query parameter forms like token=abcdef
    (re.compile(r"""(?iu)((?:access_)?token=)[^&\s"']+"""), r"\1***"),
]



def redactText(text: str) -> str:
    """Return sanitized text with sensitive substrings replaced by ***."""
    if not text:
        return text
    out = text
    for pattern, repl in _SENSITIVE_PATTERNS:
        try:
            out = pattern.sub(repl, out)
        except re.error:
            continue # Never crash logging on regex errors
    return out



def redactArguments(arguments: list[str] | tuple[str, ...]) -> list[str]:
    """Copy of an argv list with the value after every sensitive flag masked."""
    out: list[str] = []
    maskNext = False
    for arg in arguments:
        if maskNext:
            out.append("***")
            maskNext = False
            continue
        out.append(arg)
        if arg in SENSITIVE_FLAGS:
            maskNext = True
    return out
