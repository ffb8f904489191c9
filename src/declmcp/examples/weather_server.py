"""Example declaration file: a small weather and user service.

Load it with::

    from declmcp import load_server
    registrations = load_server("weather_server.py")
    registrations.tool("get_weather_forecast").invoke({"city": "Oslo"})
"""

from typing import Literal

from typing_extensions import NotRequired, TypedDict

from declmcp import Prompt, Resource, Server, Tool


class Forecast(TypedDict):
    city: str
    # Temperature in Celsius
    temperature: float
    conditions: Literal["sunny", "cloudy", "rain", "snow"]


class GetWeatherForecast(Tool):
    """Get the current forecast for a city."""

    name: Literal["get_weather_forecast"]

    class params(TypedDict):
        # City to look up
        # @minLength 1
        city: str
        units: NotRequired[Literal["metric", "imperial"]]

    result: Forecast


class CreateUserParams(TypedDict):
    # Login name
    # @minLength 3
    # @maxLength 20
    # @pattern ^[a-zA-Z0-9_]+$
    username: str

    # @format email
    email: str

    age: float
    """Age in years.

    @min 18
    @max 120
    @int
    """

    tags: NotRequired[list[str]]
    """@maxItems 5
    @uniqueItems"""


class CreateUser(Tool):
    """Create a user account."""

    name: Literal["create_user"]
    params: CreateUserParams


class CodeReview(Prompt):
    name: Literal["code_review"]
    description: Literal["Ask for a review of a code snippet"]

    class args(TypedDict):
        language: str
        code: str

    template: Literal["Please review this {{language}} code:\n\n{{code}}"]


class WeatherReport(Prompt):
    """Summarize the weather for a city in prose."""

    name: Literal["weather_report"]

    class args(TypedDict):
        city: str


class ServerConfig(Resource):
    """Static server configuration."""

    uri: Literal["config://server"]

    class data:
        region: Literal["eu-north"]
        max_forecast_days: Literal[7]
        features: tuple[Literal["forecast"], Literal["users"]]


class UserSettings(Resource):
    """Settings of the current user."""

    uri: Literal["user://profile/settings"]

    class data(TypedDict):
        theme: Literal["light", "dark"]
        language: str


class Weather(Server):
    """Weather lookups and user management."""

    name: Literal["weather-service"]
    version: Literal["1.0.0"]


class WeatherService(Weather):
    def __init__(self) -> None:
        self.users: dict[str, dict] = {}

    def getWeatherForecast(self, params: dict) -> dict:
        return {"city": params["city"], "temperature": 21.5, "conditions": "sunny"}

    def createUser(self, params: dict) -> dict:
        self.users[params["username"]] = params
        return {"created": params["username"]}

    def weatherReport(self, args: dict) -> str:
        forecast = self.getWeatherForecast({"city": args["city"]})
        return f"It is {forecast['conditions']} and {forecast['temperature']} degrees in {forecast['city']}."

    def user__Profile_Settings(self) -> dict:
        return {"theme": "dark", "language": "en"}


export = WeatherService
