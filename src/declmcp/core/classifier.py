"""Static/dynamic classification of prompts and resources.

Static content is fully known from the declaration and needs no
implementation member; dynamic content is computed by one at call time.
"""

from typing import TYPE_CHECKING, Union

from declmcp.core.schema import NOT_LITERAL

if TYPE_CHECKING:
    from declmcp.core.parser import ParsedPrompt, ParsedResource


def is_dynamic_prompt(template: str | None, explicit_dynamic: bool) -> bool:
    """A prompt is dynamic without a literal template or when flagged."""
    return explicit_dynamic or template is None


def is_dynamic_resource(literal_data: object, explicit_dynamic: bool) -> bool:
    """A resource is dynamic when any part of its data is non-literal or when flagged.

    ``literal_data`` is the result of :func:`declmcp.core.schema.extract_literal`,
    which stops at the first non-literal member it meets.
    """
    return explicit_dynamic or literal_data is NOT_LITERAL


def classify(item: Union["ParsedPrompt", "ParsedResource"]) -> bool:
    """Return ``True`` when ``item`` needs an implementation member."""
    if hasattr(item, "template"):
        return is_dynamic_prompt(item.template, item.explicit_dynamic)
    return is_dynamic_resource(item.literal_data, item.explicit_dynamic)
