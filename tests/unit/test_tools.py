from datetime import timezone

import pytest

from chat_orchestrator.agent.registry import ToolContext, ToolOutput
from chat_orchestrator.agent.tools import builtin_tool_specs, evaluate_expression, resolve_timezone


def _run(name: str, payload: dict) -> ToolOutput:
    spec = {spec.name: spec for spec in builtin_tool_specs()}[name]
    return spec.handler(spec.parse(payload), ToolContext(caller_id="alice"))


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("12 * 8", 96),
        ("2^10", 1024),
        ("sqrt(16) + 1", 5),
        ("10 / 4", 2.5),
        ("-(3 + 4) % 5", 3),
        ("6 × 7", 42),
    ],
)
def test_calculator_evaluates_arithmetic(expression: str, expected: float) -> None:
    assert evaluate_expression(expression) == expected


@pytest.mark.parametrize(
    "expression",
    ["__import__('os')", "1 / 0", "2 ** 100000", "open", "1 +"],
)
def test_calculator_rejects_unsafe_or_invalid_input(expression: str) -> None:
    with pytest.raises(ValueError):
        evaluate_expression(expression)


def test_calculator_tool_message() -> None:
    output = _run("calculator", {"expression": "12 * 8"})

    assert output.data == {"expression": "12 * 8", "result": 96}
    assert output.message == "12 * 8 = 96"


def test_weather_is_stable_per_location_and_converts_units() -> None:
    celsius = _run("weather", {"location": "Paris"})
    again = _run("weather", {"location": "paris"})
    kelvin = _run("weather", {"location": "Paris", "units": "kelvin"})

    assert celsius.data["temperature"] == again.data["temperature"]
    assert kelvin.data["temperature"] == pytest.approx(celsius.data["temperature"] + 273.15, abs=0.11)
    assert celsius.data["placeholder"] is True


def test_time_accepts_city_aliases() -> None:
    assert resolve_timezone("Tokyo")[0] == "Asia/Tokyo"
    assert resolve_timezone("utc") == ("UTC", timezone.utc)
    with pytest.raises(ValueError):
        resolve_timezone("Atlantis/Lost_City")

    output = _run("time", {"timezone": "london", "format": "iso"})
    assert output.data["timezone"] == "Europe/London"
    assert "T" in output.data["time"]


def test_search_returns_requested_number_of_placeholder_results() -> None:
    output = _run("search", {"query": "python asyncio", "limit": 3})

    assert len(output.data["results"]) == 3
    assert output.data["results"][0]["url"] == "https://example.com/python-asyncio/1"


def test_uuid_generation_modes() -> None:
    first = _run("uuid", {"type": "uuid5", "namespace": "dns", "name": "example.com"})
    second = _run("uuid", {"type": "uuid5", "namespace": "dns", "name": "example.com"})
    batch = _run("uuid", {"type": "nanoid", "count": 3, "length": 10})

    assert first.data["ids"] == second.data["ids"]
    assert first.data["ids"] == ["cfbff0d1-9375-5685-968c-48ce8b15ae17"]
    assert [len(value) for value in batch.data["ids"]] == [10, 10, 10]
    with pytest.raises(ValueError):
        _run("uuid", {"type": "uuid3", "namespace": "dns"})
