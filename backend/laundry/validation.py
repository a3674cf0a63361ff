# Overview: Request-body validation helpers shared by the JSON blueprints.

from __future__ import annotations

from flask import request

from .errors import ValidationError


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_field(data: dict, name: str):
    if name not in data or data[name] is None:
        raise ValidationError(f"Missing required field: {name}", field=name)
    return data[name]


def int_field(data: dict, name: str, *, required: bool = True, default=None):
    if name not in data or data[name] is None:
        if required:
            raise ValidationError(f"Missing required field: {name}", field=name)
        return default
    value = data[name]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", field=name)
    return value


def int_list_field(data: dict, name: str, *, required: bool = True) -> list[int]:
    if name not in data or data[name] is None:
        if required:
            raise ValidationError(f"Missing required field: {name}", field=name)
        return []
    values = data[name]
    if not isinstance(values, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in values):
        raise ValidationError(f"{name} must be a list of integers", field=name)
    return values


def str_list_field(data: dict, name: str) -> list:
    values = require_field(data, name)
    if not isinstance(values, list):
        raise ValidationError(f"{name} must be a list of strings", field=name)
    return values


def query_int(name: str):
    value = request.args.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", field=name)


def coordinate_value(value, field: str):
    """Latitude/longitude as float; None or "" means not given."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
