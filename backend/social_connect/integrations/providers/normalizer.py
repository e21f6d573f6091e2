from collections.abc import Callable, Iterable
from typing import Any

from social_connect.application.errors import NoEligibleAccountFound


def clean_optional(value: Any) -> str | None:
    """Degrade missing, blank or non-scalar profile values to ``None``."""
    if value is None or isinstance(value, (dict, list, tuple, set, bool)):
        return None
    text = str(value).strip()
    return text or None


def dig(payload: Any, *path: str) -> Any:
    current = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def select_first_eligible(
    entities: Iterable[Any],
    predicate: Callable[[dict], bool],
    *,
    platform: str,
    message: str,
) -> dict:
    for entity in entities:
        if isinstance(entity, dict) and predicate(entity):
            return entity
    raise NoEligibleAccountFound(message, platform=platform)


def safe_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
