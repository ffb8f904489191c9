"""Marker bases for declarations.

Subclassing one of these marks a class as a declaration for the parser.
The classes carry no behaviour; the parser recognises them by name in the
source, so ``declmcp.Tool`` and a bare ``Tool`` are both accepted.

Example::

    class GetWeather(Tool):
        \"\"\"Look up the forecast for a city.\"\"\"

        name: Literal["get_weather_forecast"]
        params: WeatherParams
        result: Forecast
"""


class Tool:
    """Declares a callable tool: ``name``, ``description``, ``params``, ``result``."""


class Prompt:
    """Declares a prompt: ``name``, ``description``, ``args``, ``template``, ``dynamic``."""


class Resource:
    """Declares a resource: ``uri``, ``name``, ``description``, ``mime_type``, ``data``, ``dynamic``."""


class Server:
    """Declares server metadata: ``name``, ``version``, ``description``."""


MARKERS = {
    "Tool": Tool,
    "Prompt": Prompt,
    "Resource": Resource,
    "Server": Server,
}
