"""Demo tools: system and business metrics, web search stub, date/time, math.

The metric and search tools return canned sample data; they stand in for real
integrations so the tool-calling path can be exercised end to end.
"""

import asyncio
import math
from datetime import datetime, timedelta, timezone

from perspective_agent.tools.registry import Tool, ToolRegistry

_DATE_FORMAT = "%Y-%m-%d"
_BAD_DATE = "Invalid date format. Please use yyyy-MM-dd format."

_BUSINESS_METRICS = {
    "revenue": "Monthly revenue: $125K, 12% increase from last month",
    "users": "Active users: 15,432 (+8% WoW), Churn rate: 2.1%",
    "performance": "API response time: 120ms avg, 99.97% uptime",
}


def _string_param(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


def _number_param(description: str) -> dict[str, str]:
    return {"type": "number", "description": description}


def _schema(properties: dict[str, dict], required: list[str]) -> dict:
    return {"type": "object", "properties": properties, "required": required}


async def get_system_metrics() -> str:
    await asyncio.sleep(0.1)
    return "CPU: 45%, Memory: 62%, Disk I/O: 23%"


async def check_rate_limit(service_name: str) -> str:
    await asyncio.sleep(0.1)
    return f"{service_name} API: 450/1000 requests used this hour, resets in 23 minutes"


async def get_business_metrics(metric_type: str) -> str:
    await asyncio.sleep(0.1)
    return _BUSINESS_METRICS.get(metric_type, "Metric not found")


async def search_web(query: str) -> str:
    await asyncio.sleep(0.2)
    return (
        f"Search results for '{query}': Latest industry reports show best practices include "
        "exponential backoff, circuit breakers, and request queuing for API rate limiting scenarios."
    )


def get_current_datetime() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def get_current_utc_datetime() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _parse_date(value: str) -> datetime | None:
    try:
        return datetime.strptime(value, _DATE_FORMAT)
    except ValueError:
        return None


def add_days_to_date(date: str, days: int) -> str:
    parsed = _parse_date(date)
    if parsed is None:
        return _BAD_DATE
    return (parsed + timedelta(days=int(days))).strftime(_DATE_FORMAT)


def days_between_dates(start_date: str, end_date: str) -> str:
    start, end = _parse_date(start_date), _parse_date(end_date)
    if start is None or end is None:
        return "Invalid date format. Please use yyyy-MM-dd format for both dates."
    return f"{abs((end - start).days)} days"


def get_day_of_week(date: str) -> str:
    parsed = _parse_date(date)
    if parsed is None:
        return _BAD_DATE
    return parsed.strftime("%A")


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def calculate(operation: str, a: float, b: float | None = None) -> str:
    """Arithmetic helper. Domain errors come back as 'Error: ...' strings."""
    binary = {"add", "subtract", "multiply", "divide", "power", "percentage", "percentage_change"}
    if operation in binary and b is None:
        return f"Error: operation '{operation}' needs two operands."

    if operation == "add":
        return _format_number(a + b)
    if operation == "subtract":
        return _format_number(a - b)
    if operation == "multiply":
        return _format_number(a * b)
    if operation == "divide":
        if b == 0:
            return "Error: Division by zero is not allowed."
        return _format_number(a / b)
    if operation == "power":
        return _format_number(math.pow(a, b))
    if operation == "sqrt":
        if a < 0:
            return "Error: Cannot calculate square root of negative number."
        return _format_number(math.sqrt(a))
    if operation == "percentage":
        return _format_number(0 if b == 0 else a / b * 100)
    if operation == "percentage_change":
        if a == 0:
            return "Error: Cannot calculate percentage change when original value is zero."
        return f"{round((b - a) / a * 100, 2)}%"
    if operation == "factorial":
        n = int(a)
        if n < 0:
            return "Error: Factorial is not defined for negative numbers."
        if n > 20:
            return "Error: Number too large for factorial calculation (max 20)."
        return str(math.factorial(n))
    return f"Error: unsupported operation '{operation}'."


def default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(Tool(
        name="get_system_metrics",
        description="Get current system performance metrics",
        handler=get_system_metrics,
    ))
    registry.register(Tool(
        name="check_system_rate_limit",
        description="Check API rate limit status for a service",
        handler=check_rate_limit,
        parameters=_schema({"service_name": _string_param("The API service name")}, ["service_name"]),
    ))
    registry.register(Tool(
        name="get_business_metrics",
        description="Get business metrics and KPIs (revenue, users, performance)",
        handler=get_business_metrics,
        parameters=_schema(
            {"metric_type": {
                "type": "string",
                "enum": sorted(_BUSINESS_METRICS),
                "description": "Metric type to retrieve",
            }},
            ["metric_type"],
        ),
    ))
    registry.register(Tool(
        name="search_web",
        description="Search the web for current information",
        handler=search_web,
        parameters=_schema({"query": _string_param("Search query")}, ["query"]),
    ))
    registry.register(Tool(
        name="get_current_datetime",
        description="Get the current local date and time",
        handler=get_current_datetime,
    ))
    registry.register(Tool(
        name="get_current_utc_datetime",
        description="Get the current UTC date and time",
        handler=get_current_utc_datetime,
    ))
    registry.register(Tool(
        name="add_days_to_date",
        description="Add days to a date",
        handler=add_days_to_date,
        parameters=_schema(
            {
                "date": _string_param("Date in yyyy-MM-dd format"),
                "days": {"type": "integer", "description": "Number of days to add"},
            },
            ["date", "days"],
        ),
    ))
    registry.register(Tool(
        name="days_between_dates",
        description="Calculate days between two dates",
        handler=days_between_dates,
        parameters=_schema(
            {
                "start_date": _string_param("Start date in yyyy-MM-dd format"),
                "end_date": _string_param("End date in yyyy-MM-dd format"),
            },
            ["start_date", "end_date"],
        ),
    ))
    registry.register(Tool(
        name="get_day_of_week",
        description="Get the day of the week for a given date",
        handler=get_day_of_week,
        parameters=_schema({"date": _string_param("Date in yyyy-MM-dd format")}, ["date"]),
    ))
    registry.register(Tool(
        name="calculate",
        description=(
            "Arithmetic: add, subtract, multiply, divide, power, sqrt, percentage "
            "(a as a percent of b), percentage_change (from a to b), factorial"
        ),
        handler=calculate,
        parameters=_schema(
            {
                "operation": {
                    "type": "string",
                    "enum": [
                        "add", "subtract", "multiply", "divide", "power", "sqrt",
                        "percentage", "percentage_change", "factorial",
                    ],
                    "description": "Operation to perform",
                },
                "a": _number_param("First operand"),
                "b": _number_param("Second operand, for binary operations"),
            },
            ["operation", "a"],
        ),
    ))
    return registry
