"""Request-parsing helpers shared by the portal blueprints."""

from flask import request

from portal.core.exceptions import ValidationError


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def int_field(data, key: str, required: bool = True) -> int | None:
    """Read an integer from a JSON body or query args; ValidationError when bad."""
    value = data.get(key)
    if value in (None, ""):
        if required:
            raise ValidationError(f"Field '{key}' is required", details={key: "missing"})
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Field '{key}' must be an integer", details={key: "invalid"}) from None


def id_list(data, key: str = "ids") -> list:
    value = data.get(key)
    if not isinstance(value, list) or not value:
        raise ValidationError(f"Field '{key}' must be a non-empty list", details={key: "invalid"})
    return value
