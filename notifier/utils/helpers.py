"""
Helper utilities
"""
from datetime import date, datetime
from typing import Any, Dict, Iterable, List


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def model_to_dict(row: Any, exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """Column values of an ORM row, dates as ISO strings"""
    skip = set(exclude)
    result = {}
    for column in row.__table__.columns:
        if column.name in skip:
            continue
        value = getattr(row, column.name)
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        result[column.name] = value
    return result


def models_to_dicts(rows: List[Any], exclude: Iterable[str] = ()) -> List[Dict[str, Any]]:
    return [model_to_dict(row, exclude) for row in rows]
