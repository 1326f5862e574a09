from __future__ import annotations

import pytest

from metric_ratchet.numbers import NonNumericOutputError, format_number, parse_number


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("42", 42.0),
        ("  -7 \n", -7.0),
        ("3.25", 3.25),
        ("1e3", 1000.0),
        ("0.001", 0.001),
    ],
)
def test_parse_number_accepts_ints_and_floats(text: str, expected: float) -> None:
    assert parse_number(text) == expected


@pytest.mark.parametrize(
    "text",
    ["", "   ", "N/A", "abc", "12 apples", "1_000", "1" * 400, "1e400", "-1e400"],
)
def test_parse_number_rejects_non_numeric(text: str) -> None:
    with pytest.raises(NonNumericOutputError):
        parse_number(text)


def test_parse_number_accepts_spelled_out_infinity() -> None:
    assert parse_number("inf") == float("inf")
    assert parse_number("-Infinity") == float("-inf")


def test_out_of_range_integer_is_rejected() -> None:
    with pytest.raises(NonNumericOutputError, match="out of range"):
        parse_number("9" * 400)


def test_non_numeric_error_is_value_error() -> None:
    with pytest.raises(ValueError, match="not a valid number"):
        parse_number("abc")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (42.0, "42"),
        (-3.0, "-3"),
        (3.5, "3.5"),
        (0.1, "0.1"),
        (100.0, "100"),
        (123456.0, "123456"),
        (1234567.0, "1.234567e+06"),
        (1e6, "1e+06"),
        (0.0001, "0.0001"),
        (0.00001, "1e-05"),
        (0.0, "0"),
        (float("inf"), "+Inf"),
    ],
)
def test_format_number_uses_shortest_form(value: float, expected: str) -> None:
    assert format_number(value) == expected
