# utils/ids.py
from typing import List

from services.errors import ValidationError


def positive_int(value, what: str) -> int:
    """Coerce a JSON id/quantity to a positive int or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{what} must be a positive integer", value=value)
    try:
        n = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{what} must be a positive integer", value=value) from None
    if n <= 0 or (isinstance(value, float) and value != n):
        raise ValidationError(f"{what} must be a positive integer", value=value)
    return n


def parse_id_list(values, what: str = "ticket id", allow_duplicates: bool = False) -> List[int]:
    """
    Validate a non-empty list of positive integer ids. Duplicates are an error
    unless allow_duplicates is set, in which case they are dropped (first
    occurrence order kept).
    """
    if not isinstance(values, list) or not values:
        raise ValidationError(f"Provide a non-empty array of {what}s")
    ids = [positive_int(v, what) for v in values]
    if allow_duplicates:
        return list(dict.fromkeys(ids))
    if len(set(ids)) != len(ids):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise ValidationError(f"Duplicate {what}s in request", duplicates=dupes)
    return ids
