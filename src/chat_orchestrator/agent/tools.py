"""Built-in tool implementations."""

from __future__ import annotations

import ast
import math
import operator
import random
import re
import secrets
import string
import uuid
from datetime import datetime, timezone, tzinfo
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from chat_orchestrator.agent.registry import (
    RateLimit,
    ToolContext,
    ToolOutput,
    ToolRegistry,
    ToolSpec,
)

_ALLOWED_EXPRESSION = re.compile(r"^[0-9+\-*/.()^%\s\w,×÷]+$")
_MAX_EXPONENT = 10_000

_BINARY_OPS: dict[type[ast.operator], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS: dict[type[ast.unaryop], Any] = {ast.UAdd: operator.pos, ast.USub: operator.neg}
_FUNCTIONS: dict[str, Any] = {
    "sqrt": math.sqrt,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "log": math.log,
    "abs": abs,
    "floor": math.floor,
    "ceil": math.ceil,
    "round": round,
}
_CONSTANTS = {"pi": math.pi, "e": math.e}

CITY_TIMEZONES = {
    "london": "Europe/London",
    "paris": "Europe/Paris",
    "tokyo": "Asia/Tokyo",
    "sydney": "Australia/Sydney",
    "new york": "America/New_York",
    "los angeles": "America/Los_Angeles",
    "chicago": "America/Chicago",
    "denver": "America/Denver",
    "utc": "UTC",
    "gmt": "GMT",
}

_CONDITIONS = ("sunny", "partly cloudy", "cloudy", "light rain", "showers", "windy", "clear")
_NANOID_ALPHABET = string.ascii_letters + string.digits + "_-"
_UUID_NAMESPACES = {
    "dns": uuid.NAMESPACE_DNS,
    "url": uuid.NAMESPACE_URL,
    "oid": uuid.NAMESPACE_OID,
    "x500": uuid.NAMESPACE_X500,
}


class CalculatorInput(BaseModel):
    expression: str = Field(
        min_length=1,
        description="Arithmetic expression, e.g. '12 * 8' or 'sqrt(16) + 2^3'.",
    )


class WeatherInput(BaseModel):
    location: str = Field(min_length=1, description="City or place name.")
    units: Literal["celsius", "fahrenheit", "kelvin"] = "celsius"


class TimeInput(BaseModel):
    timezone: str = Field(default="UTC", description="IANA timezone or a known city name.")
    format: Literal["12hour", "24hour", "iso"] = "24hour"


class SearchInput(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=10)


class UuidInput(BaseModel):
    type: Literal["uuid4", "uuid1", "uuid3", "uuid5", "nanoid", "random", "short"] = "uuid4"
    count: int = Field(default=1, ge=1, le=20)
    namespace: str | None = Field(
        default=None, description="dns, url, oid, x500 or a UUID; required for uuid3/uuid5."
    )
    name: str | None = Field(default=None, description="Name to hash; required for uuid3/uuid5.")
    length: int = Field(default=21, ge=4, le=64, description="Length for nanoid/random ids.")


def evaluate_expression(expression: str) -> float | int:
    """Evaluate an arithmetic expression without `eval`.

    Raises ValueError for disallowed characters, names or node types.
    """
    if not _ALLOWED_EXPRESSION.match(expression):
        raise ValueError("Expression contains invalid characters")
    normalized = expression.replace("^", "**").replace("×", "*").replace("÷", "/")
    try:
        tree = ast.parse(normalized.strip(), mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"Invalid expression: {expression}") from exc
    result = _eval_node(tree.body)
    if isinstance(result, float):
        if not math.isfinite(result):
            raise ValueError("Result is not a finite number")
        if result.is_integer() and abs(result) < 1e15:
            return int(result)
    return result


def _eval_node(node: ast.AST) -> float | int:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        if isinstance(node.value, bool):
            raise ValueError("Booleans are not numbers here")
        return node.value
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > _MAX_EXPONENT:
            raise ValueError("Exponent too large")
        try:
            return _BINARY_OPS[type(node.op)](left, right)
        except ZeroDivisionError as exc:
            raise ValueError("Division by zero") from exc
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and not node.keywords
    ):
        args = [_eval_node(arg) for arg in node.args]
        return _FUNCTIONS[node.func.id](*args)
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def resolve_timezone(name: str) -> tuple[str, tzinfo]:
    """Map a city alias or IANA name to a tzinfo."""
    key = name.strip()
    mapped = CITY_TIMEZONES.get(key.lower(), key)
    if mapped.upper() in {"UTC", "GMT"}:
        return mapped.upper(), timezone.utc
    try:
        return mapped, ZoneInfo(mapped)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def _calculator(args: CalculatorInput, context: ToolContext) -> ToolOutput:
    result = evaluate_expression(args.expression)
    return ToolOutput(
        data={"expression": args.expression, "result": result},
        message=f"{args.expression} = {result}",
    )


def _weather(args: WeatherInput, context: ToolContext) -> ToolOutput:
    # Placeholder provider: stable values per location.
    rng = random.Random(args.location.strip().lower())
    celsius = round(rng.uniform(-5.0, 35.0), 1)
    condition = rng.choice(_CONDITIONS)
    humidity = rng.randint(20, 95)
    wind_kmh = rng.randint(0, 40)

    if args.units == "fahrenheit":
        temperature, symbol = round(celsius * 9 / 5 + 32, 1), "°F"
    elif args.units == "kelvin":
        temperature, symbol = round(celsius + 273.15, 1), "K"
    else:
        temperature, symbol = celsius, "°C"

    return ToolOutput(
        data={
            "location": args.location,
            "temperature": temperature,
            "units": args.units,
            "condition": condition,
            "humidity": humidity,
            "wind_kmh": wind_kmh,
            "placeholder": True,
        },
        message=(
            f"Weather in {args.location}: {temperature}{symbol}, {condition}, "
            f"humidity {humidity}%, wind {wind_kmh} km/h"
        ),
    )


def _time(args: TimeInput, context: ToolContext) -> ToolOutput:
    zone_name, zone = resolve_timezone(args.timezone)
    now = datetime.now(zone)
    if args.format == "12hour":
        rendered = now.strftime("%Y-%m-%d %I:%M:%S %p")
    elif args.format == "iso":
        rendered = now.isoformat()
    else:
        rendered = now.strftime("%Y-%m-%d %H:%M:%S")
    return ToolOutput(
        data={"timezone": zone_name, "time": rendered, "iso": now.isoformat()},
        message=f"Current time in {args.timezone}: {rendered}",
    )


def _search(args: SearchInput, context: ToolContext) -> ToolOutput:
    slug = re.sub(r"[^a-z0-9]+", "-", args.query.lower()).strip("-") or "query"
    results = [
        {
            "title": f"{args.query} - result {index}",
            "url": f"https://example.com/{slug}/{index}",
            "snippet": f"Placeholder result {index} for '{args.query}'.",
        }
        for index in range(1, args.limit + 1)
    ]
    return ToolOutput(
        data={"query": args.query, "results": results, "placeholder": True},
        message=f"Found {len(results)} results for '{args.query}'",
    )


def _uuid(args: UuidInput, context: ToolContext) -> ToolOutput:
    ids = [_generate_id(args) for _ in range(args.count)]
    label = "identifier" if args.count == 1 else "identifiers"
    return ToolOutput(
        data={"type": args.type, "ids": ids},
        message=f"Generated {args.count} {args.type} {label}: " + ", ".join(ids),
    )


def _generate_id(args: UuidInput) -> str:
    if args.type == "uuid4":
        return str(uuid.uuid4())
    if args.type == "uuid1":
        return str(uuid.uuid1())
    if args.type in {"uuid3", "uuid5"}:
        if not args.namespace or not args.name:
            raise ValueError(f"{args.type} requires both namespace and name")
        namespace = _UUID_NAMESPACES.get(args.namespace.lower())
        if namespace is None:
            try:
                namespace = uuid.UUID(args.namespace)
            except ValueError as exc:
                raise ValueError(f"Invalid namespace: {args.namespace}") from exc
        factory = uuid.uuid3 if args.type == "uuid3" else uuid.uuid5
        return str(factory(namespace, args.name))
    if args.type == "nanoid":
        return "".join(secrets.choice(_NANOID_ALPHABET) for _ in range(args.length))
    if args.type == "random":
        return secrets.token_hex((args.length + 1) // 2)[: args.length]
    return uuid.uuid4().hex[:8]


def builtin_tool_specs() -> list[ToolSpec]:
    return [
        ToolSpec(
            name="calculator",
            description="Evaluate arithmetic expressions (+ - * / ^ %, sqrt, sin, cos, log, pi).",
            args_schema=CalculatorInput,
            handler=_calculator,
            category="math",
        ),
        ToolSpec(
            name="weather",
            description="Get current weather conditions for a location.",
            args_schema=WeatherInput,
            handler=_weather,
            category="information",
            rate_limit=RateLimit(max_calls=20, window_seconds=60.0),
        ),
        ToolSpec(
            name="time",
            description="Get the current date and time in a timezone or city.",
            args_schema=TimeInput,
            handler=_time,
            category="information",
        ),
        ToolSpec(
            name="search",
            description="Search the web for current information.",
            args_schema=SearchInput,
            handler=_search,
            category="information",
            rate_limit=RateLimit(max_calls=10, window_seconds=60.0),
        ),
        ToolSpec(
            name="uuid",
            description="Generate unique identifiers (uuid4, uuid1, uuid3, uuid5, nanoid, random, short).",
            args_schema=UuidInput,
            handler=_uuid,
            category="utility",
        ),
    ]


def register_builtin_tools(registry: ToolRegistry) -> None:
    """Register the default tool set: calculator, weather, time, search and uuid."""
    registry.register_many(builtin_tool_specs())
