# Input validators used by the API models

import re
from typing import Any

_HALL_ID_PATTERN = re.compile(r'^[a-z0-9][a-z0-9_-]{0,63}$')


def validate_window_type(window_type: str) -> bool:
    return window_type in ['breakfast', 'lunch', 'dinner']


def validate_hall_id(hall_id: str) -> bool:
    """
    Dining hall ids are lowercase slugs, e.g. "north-commons"
    """
    if not hall_id or not isinstance(hall_id, str):
        return False
    return bool(_HALL_ID_PATTERN.match(hall_id))


def validate_pin(pin: str) -> bool:
    """
    A single six-digit handoff PIN
    """
    return isinstance(pin, str) and bool(re.fullmatch(r'\d{6}', pin))


def validate_price_dollars(price: Any) -> bool:
    if isinstance(price, bool):
        return False
    try:
        return float(price) >= 0
    except (ValueError, TypeError):
        return False

