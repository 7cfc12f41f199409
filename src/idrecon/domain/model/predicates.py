"""Search predicates shared by the internal store and connectors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from .records import encode_value

if TYPE_CHECKING:
    from collections.abc import Callable

    from .records import Scalar


class Comparison(StrEnum):
    EQ = "eq"
    IEQ = "ieq"
    IS_NULL = "is_null"


@dataclass(frozen=True, slots=True)
class Condition:
    """Single attribute test.

    ``attribute`` is an internal reference (``plain:email``, ``username``) when
    evaluated by the internal store and an external attribute name
    (``mail``, ``__NAME__``) when evaluated by a connector.
    """

    attribute: str
    comparison: Comparison
    value: Scalar | None = None

    def test(self, values: tuple[Scalar | None, ...] | None) -> bool:
        present = [value for value in values or () if value is not None]
        if self.comparison is Comparison.IS_NULL:
            return not present
        if self.value is None:
            return False
        expected = encode_value(self.value)
        if self.comparison is Comparison.IEQ:
            expected = expected.lower()
            return any(encode_value(value).lower() == expected for value in present)
        return any(encode_value(value) == expected for value in present)

    def matches(self, lookup: Callable[[str], tuple[Scalar | None, ...] | None]) -> bool:
        return self.test(lookup(self.attribute))


@dataclass(frozen=True, slots=True)
class Conjunction:
    conditions: tuple[Condition, ...]

    def matches(self, lookup: Callable[[str], tuple[Scalar | None, ...] | None]) -> bool:
        return all(condition.matches(lookup) for condition in self.conditions)


type SearchPredicate = Condition | Conjunction


def conditions_of(predicate: SearchPredicate) -> tuple[Condition, ...]:
    if isinstance(predicate, Conjunction):
        return predicate.conditions
    return (predicate,)
