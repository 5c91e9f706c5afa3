import pytest

from idlescan.modules.detection.domain.expression import (
    SUPPORTED_OPERATORS,
    evaluate,
    parse_operator,
)
from idlescan.shared.core.exceptions import UnsupportedOperatorError


@pytest.mark.parametrize(
    "measured, threshold, operator, expected",
    [
        (5, 10, ">=", False),
        (15, 10, ">=", True),
        (10, 10, ">=", True),
        (10, 10, ">", False),
        (11, 10, ">", True),
        (9, 10, "<", True),
        (10, 10, "<=", True),
        (0, 0, "==", True),
        (0.1, 0, "==", False),
        (1, 0, "!=", True),
    ],
)
def test_evaluate_operators(measured, threshold, operator, expected):
    assert evaluate(measured, threshold, operator) is expected


def test_unknown_operator_raises():
    with pytest.raises(UnsupportedOperatorError) as exc_info:
        evaluate(1, 2, "?")

    assert exc_info.value.operator == "?"
    assert exc_info.value.code == "unsupported_operator"


def test_operator_whitespace_is_tolerated():
    assert evaluate(3, 2, " > ") is True


def test_comparison_has_no_epsilon():
    assert evaluate(0.1 + 0.2, 0.3, "==") is False
    assert evaluate(0.1 + 0.2, 0.3, ">") is True


def test_supported_operator_set():
    assert set(SUPPORTED_OPERATORS) == {">", ">=", "<", "<=", "==", "!="}
    for token in SUPPORTED_OPERATORS:
        assert callable(parse_operator(token))
