from flask import request

from ..errors import ValidationError


def json_payload() -> dict:
    """Request body as a dict; a non-object JSON body is a ValidationError."""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def flag_arg(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
