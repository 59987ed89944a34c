import math
import re
from typing import Optional, Union

CellValue = Union[int, float, bool, str, None]

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")

TRUE_TOKENS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
FALSE_TOKENS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def _parse_int(text: str) -> Optional[int]:
    if not _INT_PATTERN.fullmatch(text):
        return None
    value = int(text)
    if value < INT64_MIN or value > INT64_MAX:
        return None
    return value


def _parse_float(text: str) -> Optional[float]:
    # float() also accepts digit separators, which spreadsheet text never uses
    if "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _parse_bool(text: str) -> Optional[bool]:
    if text in TRUE_TOKENS:
        return True
    if text in FALSE_TOKENS:
        return False
    return None


def coerce(text: Optional[str]) -> CellValue:
    """
    Convert raw cell text into a typed value.

    Conversions are attempted in a fixed order: integer, float, boolean and
    finally the trimmed text itself. Empty text becomes None.

    Args:
        text: Raw cell text (None is treated as empty)

    Returns:
        CellValue: int, float, bool, str or None
    """
    if text is None:
        return None
    text = text.strip()
    if not text:
        return None

    int_value = _parse_int(text)
    if int_value is not None:
        return int_value

    float_value = _parse_float(text)
    if float_value is not None:
        return float_value

    bool_value = _parse_bool(text)
    if bool_value is not None:
        return bool_value

    return text


def format_number(value: float) -> str:
    """Render a decoded number the way a spreadsheet shows it: integral values without '.0'"""
    if math.isfinite(value) and value.is_integer() and INT64_MIN <= value <= INT64_MAX:
        return str(int(value))
    return repr(value)
