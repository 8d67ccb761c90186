"""Request predicates and first-match-wins rule selection."""

from __future__ import annotations

import re
from enum import Enum
from functools import lru_cache
from typing import Callable, Mapping, Optional, Sequence, Union

from .models import RequestRule
from .request import BodyReadError, MockRequest


class InvalidPattern(str, Enum):
    """What a predicate does when its pattern is not a valid regular expression."""

    EXACT = "exact"
    FAIL = "fail"


@lru_cache(maxsize=512)
def _compile(pattern: Union[str, bytes]) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern)
    except re.error:
        return None


def match_pattern(pattern: str, value: Union[str, bytes], on_invalid: InvalidPattern) -> bool:
    """Unanchored regex search of ``pattern`` in ``value``.

    An invalid pattern falls back to literal equality (``EXACT``) or never
    matches (``FAIL``). Byte values are searched with the pattern compiled
    as a bytes expression.
    """

    if isinstance(value, bytes):
        compiled = _compile(pattern.encode("utf-8"))
    else:
        compiled = _compile(pattern)
    if compiled is None:
        if on_invalid is InvalidPattern.EXACT:
            literal = pattern.encode("utf-8") if isinstance(value, bytes) else pattern
            return value == literal
        return False
    return compiled.search(value) is not None


def _match_all(patterns: Mapping[str, str], lookup: Callable[[str], str]) -> bool:
    for name, pattern in patterns.items():
        if not match_pattern(pattern, lookup(name), InvalidPattern.EXACT):
            return False
    return True


def match_headers(patterns: Mapping[str, str], request: MockRequest) -> bool:
    if not patterns:
        return True
    return _match_all(patterns, request.header)


def match_query_params(patterns: Mapping[str, str], request: MockRequest) -> bool:
    if not patterns:
        return True
    return _match_all(patterns, request.query_param)


def match_body(pattern: str, request: MockRequest) -> bool:
    if not pattern:
        return True
    try:
        body = request.body.read()
    except BodyReadError:
        return False
    return match_pattern(pattern, body, InvalidPattern.FAIL)


def rule_matches(rule: RequestRule, request: MockRequest) -> bool:
    """Check a single rule, cheapest conditions first."""

    if rule.path != request.path:
        return False
    if rule.method.upper() != request.method.upper():
        return False
    if not match_headers(rule.headers, request):
        return False
    if not match_query_params(rule.query_params, request):
        return False
    return match_body(rule.body, request)


def select_rule(rules: Sequence[RequestRule], request: MockRequest) -> Optional[RequestRule]:
    """Return the earliest declared rule matching ``request``, or ``None``."""

    for rule in rules:
        if rule_matches(rule, request):
            return rule
    return None
