from typing import List, Optional


def non_negative_int(value, field: str, errors: List[str]) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        errors.append(f"{field} must be an integer")
        return None
    if number < 0:
        errors.append(f"{field} must be >= 0")
        return None
    return number


def collect_id_list(value, field: str, errors: List[str]) -> Optional[List[str]]:
    """Normalize a list of string ids, appending a message to ``errors`` when malformed."""
    if value is None:
        return None
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) and v.strip() for v in value):
        errors.append(f"{field} must be a list of ids")
        return None
    ids = [v.strip() for v in value]
    if len(set(ids)) != len(ids):
        errors.append(f"{field} contains duplicates")
        return None
    return ids


def require_text(value, field: str, errors: List[str]) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{field} is required")
        return None
    return value.strip()
