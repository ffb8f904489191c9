"""Placeholder substitution for static prompt templates."""

import re
from collections.abc import Mapping
from typing import Any

_DOUBLE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_SINGLE = re.compile(r"(?<!\{)\{([A-Za-z_][A-Za-z0-9_]*)\}(?!\})")


def placeholders(template: str) -> list[str]:
    """Names referenced by ``{{name}}`` or ``{name}`` placeholders, in order."""
    names = _DOUBLE.findall(template) + _SINGLE.findall(template)
    return list(dict.fromkeys(names))


def render_template(template: str, args: Mapping[str, Any] | None) -> str:
    """Substitute ``{{name}}`` then ``{name}`` placeholders from ``args``.

    Placeholders without a matching argument are left in place, and
    arguments that no placeholder uses are ignored.
    """
    if not args:
        return template

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in args and args[name] is not None:
            return str(args[name])
        return match.group(0)

    rendered = _DOUBLE.sub(substitute, template)
    return _SINGLE.sub(substitute, rendered)
