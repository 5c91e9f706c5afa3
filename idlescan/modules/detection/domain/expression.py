import operator as _op
from typing import Callable

from idlescan.shared.core.exceptions import UnsupportedOperatorError

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    ">": _op.gt,
    ">=": _op.ge,
    "<": _op.lt,
    "<=": _op.le,
    "==": _op.eq,
    "!=": _op.ne,
}

SUPPORTED_OPERATORS = tuple(_OPERATORS)


def parse_operator(token: str) -> Callable[[float, float], bool]:
    """Resolve an operator token such as ``">="`` to its comparison."""
    try:
        return _OPERATORS[str(token).strip()]
    except KeyError:
        raise UnsupportedOperatorError(str(token)) from None


def evaluate(measured: float, threshold: float, operator: str) -> bool:
    """
    Evaluate ``measured <operator> threshold``.

    Plain IEEE float comparison, no tolerance. Raises
    `UnsupportedOperatorError` for unknown tokens; callers treat that as
    "no match" for the rule in question.
    """
    return bool(parse_operator(operator)(float(measured), float(threshold)))
