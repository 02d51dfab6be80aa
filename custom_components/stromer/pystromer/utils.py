"""Helpers for reading JSON payloads and handling cookies."""

from collections.abc import Mapping
from typing import Any

import httpx

JsonScalar = int | float | str | bool | None

JsonDict = dict[str, type["JsonDict"] | JsonScalar]

CookieJar = dict[str, str]

_MISSING = object()


def get_field_name_value(field_name: str, data: JsonDict | None, default: Any = None):
    """Extract a value from nested dictionary using path-like notation.

    Args:
        field_name: Path to the field using "/" as separator (e.g., "bike/state/lock")
        data: Nested dictionary containing the data
        default: Returned when any part of the path is missing or None

    Returns:
        The value at the specified path, or default
    """

    if field_name is None or not field_name.strip():
        raise ValueError("Field name cannot be empty")

    if data is None:
        return default

    result: Any = data

    for key in field_name.split("/"):
        if not isinstance(result, Mapping):
            return default
        result = result.get(key, _MISSING)
        if result is _MISSING:
            return default

    return default if result is None else result


def get_field_name_str(
    field_name: str, data: JsonDict | None, default: str | None = None
) -> str | None:
    """Extract a str value from the nested dictionary."""
    value = get_field_name_value(field_name, data)
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def get_field_name_float(
    field_name: str, data: JsonDict | None, default: float | None = None
) -> float | None:
    """Extract a float value from the nested dictionary.
    Args:
        field_name: Path to the float field
        data: Nested dictionary containing the data
        default: Returned when the field is missing
    Returns:
        float if successful, default otherwise
    Raises:
        ValueError: If the value is present but not numeric
    """
    value = get_field_name_value(field_name, data)
    if value is None:
        return default
    try:
        return float(value)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Invalid float value at '{field_name}': {value}") from exc


def get_field_name_int(
    field_name: str, data: JsonDict | None, default: int | None = None
) -> int | None:
    """Extract a int value from the nested dictionary.
    Args:
        field_name: Path to the int field
        data: Nested dictionary containing the data
        default: Returned when the field is missing
    Returns:
        int if successful, default otherwise
    Raises:
        ValueError: If the value is present but not numeric
    """
    value = get_field_name_value(field_name, data)
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Invalid integer value at '{field_name}': {value}") from exc


def get_field_name_bool(
    field_name: str, data: JsonDict | None, default: bool | None = None
) -> bool | None:
    """Extract a bool value from the nested dictionary."""
    value = get_field_name_value(field_name, data)
    if value is None:
        return default
    return bool(value)


def unwrap_data(payload: Any) -> Any:
    """Return the first record of a `{"data": [...]}` response, else the payload."""
    if isinstance(payload, Mapping):
        data = payload.get("data")
        if isinstance(data, list) and data:
            return data[0]
    return payload


def merge_cookies(jar: CookieJar, response: httpx.Response) -> CookieJar:
    """Return a new jar with the Set-Cookie entries of response merged in."""
    merged = dict(jar)
    for cookie in response.cookies.jar:
        if cookie.value is not None:
            merged[cookie.name] = cookie.value
    return merged


def cookie_header(jar: CookieJar) -> str:
    return "; ".join(f"{name}={value}" for name, value in jar.items())
