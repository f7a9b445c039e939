import math

import pytest

from calcsvc.errors import InvalidParameter, MissingParameter
from calcsvc.validation import parse_number, validate_params


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("5", 5.0),
        ("5abc", 5.0),
        ("  -2.5e1xyz", -25.0),
        (".5", 0.5),
        ("3.", 3.0),
        ("1e", 1.0),
        ("+7", 7.0),
        ("0", 0.0),
    ],
)
def test_parse_number_takes_leading_prefix(raw, expected):
    assert parse_number(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "-", ".", "e5", "NaN", "١٢", "５", "३.5"])
def test_parse_number_without_prefix_is_nan(raw):
    assert math.isnan(parse_number(raw))


def test_parse_number_infinity():
    assert parse_number("Infinity") == math.inf
    assert parse_number("-Infinityfoo") == -math.inf


def test_dual_params_ok():
    params = validate_params({"num1": "5", "num2": "3"})
    assert params.n1 == 5.0
    assert params.n2 == 3.0
    assert params.as_parameters() == {"num1": 5.0, "num2": 3.0}


def test_zero_is_valid_operand():
    params = validate_params({"num1": "0", "num2": "-0"})
    assert params.n1 == 0.0
    assert params.n2 == 0.0
    single = validate_params({"num1": "0.0"}, single=True)
    assert single.n1 == 0.0
    assert single.as_parameters() == {"num1": 0.0}


@pytest.mark.parametrize("query", [{}, {"num1": "1"}, {"num2": "1"}])
def test_dual_missing(query):
    with pytest.raises(MissingParameter, match="Missing parameter: num1 or num2"):
        validate_params(query)


@pytest.mark.parametrize("query", [{"num1": "x", "num2": "1"}, {"num1": "1", "num2": ""}, {"num1": "Infinity", "num2": "1"}])
def test_dual_invalid(query):
    with pytest.raises(InvalidParameter, match="num1 and num2 must be numbers"):
        validate_params(query)


def test_single_missing_and_invalid():
    with pytest.raises(MissingParameter, match="Missing parameter: num1"):
        validate_params({"num2": "4"}, single=True)
    with pytest.raises(InvalidParameter, match="num1 must be a number"):
        validate_params({"num1": "four"}, single=True)


def test_single_ignores_num2():
    params = validate_params({"num1": "9", "num2": "junk"}, single=True)
    assert params.n1 == 9.0
    assert params.n2 is None


def test_errors_carry_client_status():
    with pytest.raises(MissingParameter) as excinfo:
        validate_params({})
    assert excinfo.value.status_code == 400
