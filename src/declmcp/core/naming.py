"""Derive implementation member names from declared names and URIs."""

import re

_NON_IDENTIFIER = re.compile(r"[^0-9A-Za-z_]")


def _capitalize(segment: str) -> str:
    return segment[:1].upper() + segment[1:]


def snake_to_camel(name: str) -> str:
    """Convert an underscore-separated name to medial capitals.

    ``get_weather_forecast`` becomes ``getWeatherForecast``; a name without
    underscores is returned unchanged.
    """
    head, *rest = name.split("_")
    return head + "".join(_capitalize(segment) for segment in rest if segment)


def camel_to_snake(name: str) -> str:
    """Inverse of :func:`snake_to_camel` for names built from lowercase words."""
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name).lower()


def uri_to_member_name(uri: str) -> str:
    """Synthesize the member name expected for a dynamic resource.

    The scheme is kept as written, followed by a double underscore and the
    capitalized path segments joined with single underscores::

        config://server          -> config__Server
        user://profile/settings  -> user__Profile_Settings

    Characters that cannot appear in an identifier are replaced with ``_``.
    """
    scheme, separator, rest = uri.partition("://")
    if not separator:
        scheme, rest = "", uri
    segments = [
        _capitalize(_NON_IDENTIFIER.sub("_", segment))
        for segment in rest.split("/")
        if segment
    ]
    scheme = _NON_IDENTIFIER.sub("_", scheme)
    if not scheme:
        return "_".join(segments)
    if not segments:
        return scheme
    return f"{scheme}__{'_'.join(segments)}"


def member_name_candidates(kind: str, declared_name: str, primary: str) -> list[str]:
    """Member names to try, most specific first.

    The primary derived name always comes first. Tools and prompts also
    accept the declared snake_case name; resources also accept the raw URI
    as an attribute name.
    """
    candidates = [primary]
    if kind == "resource":
        candidates.append(declared_name)
    elif declared_name.isidentifier():
        candidates.append(declared_name)
        candidates.append(camel_to_snake(primary))
    return list(dict.fromkeys(candidates))
