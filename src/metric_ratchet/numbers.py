"""Parsing and formatting of metric values."""

from __future__ import annotations

import math
from decimal import Decimal

_INFINITY_SPELLINGS = frozenset({"inf", "infinity"})


class NonNumericOutputError(ValueError):
    """Raised when command output cannot be read as a number."""


def parse_number(output: str) -> float:
    """Parse trimmed command output as an integer or float."""

    text = output.strip()
    if not text:
        raise NonNumericOutputError("empty output")
    # float() accepts digit separators, plain numeric text never carries them
    if "_" in text:
        raise NonNumericOutputError(f"output '{text}' is not a valid number")
    try:
        return float(int(text))
    except ValueError:
        pass
    except OverflowError as exc:
        raise NonNumericOutputError(f"output '{text}' is out of range") from exc
    try:
        value = float(text)
    except ValueError as exc:
        raise NonNumericOutputError(f"output '{text}' is not a valid number") from exc
    # only a spelled-out infinity may parse as one
    if math.isinf(value) and text.lstrip("+-").lower() not in _INFINITY_SPELLINGS:
        raise NonNumericOutputError(f"output '{text}' is out of range")
    return value


def format_number(value: float) -> str:
    """Render a value using the shortest representation, ``%g`` style.

    Exponent notation is used when the decimal exponent is below -4 or at
    least the number of significant digits (minimum 6), so ``42.0`` renders
    as ``42`` and ``1234567.0`` as ``1.234567e+06``.
    """

    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"

    sign, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    point = len(digits) + exponent
    exp10 = point - 1

    precision = 6
    if precision > len(digits) and len(digits) >= point:
        precision = len(digits)

    prefix = "-" if sign else ""
    if exp10 < -4 or exp10 >= precision:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        return f"{prefix}{mantissa}e{'-' if exp10 < 0 else '+'}{abs(exp10):02d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return f"{prefix}{digits}{'0' * (point - len(digits))}"
    return f"{prefix}{digits[:point]}.{digits[point:]}"


__all__ = ["NonNumericOutputError", "format_number", "parse_number"]
