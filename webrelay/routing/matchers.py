"""
Value matchers used by routing conditions and host authorization.

A matcher is one of four variants, all called the same way with the value
under test: ``Exact`` (equality), ``Pattern`` (regex search), ``OneOf``
(membership) and ``Predicate`` (any callable). ``coerce`` turns the plain
values accepted by the routing API into a matcher.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Tuple


class Matcher:
    def __call__(self, value: Any) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class Exact(Matcher):
    value: Any

    def __call__(self, value: Any) -> bool:
        return value == self.value


@dataclass(frozen=True)
class Pattern(Matcher):
    regex: "re.Pattern"

    def __call__(self, value: Any) -> bool:
        if value is None:
            return False
        return self.regex.search(str(value)) is not None


@dataclass(frozen=True)
class OneOf(Matcher):
    values: Tuple[Any, ...]

    def __call__(self, value: Any) -> bool:
        return value in self.values


@dataclass(frozen=True)
class Predicate(Matcher):
    fn: Callable[[Any], Any]

    def __call__(self, value: Any) -> bool:
        return bool(self.fn(value))


def coerce(matcher: Any) -> Matcher:
    if isinstance(matcher, Matcher):
        return matcher
    if isinstance(matcher, re.Pattern):
        return Pattern(matcher)
    if isinstance(matcher, (list, tuple, set, frozenset)):
        return OneOf(tuple(matcher))
    if callable(matcher):
        return Predicate(matcher)
    return Exact(matcher)
