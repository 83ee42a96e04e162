"""Match-rule evaluation.

A rule is plain data (``MatchRule``); this module owns the behaviour.  Each
``MatchRuleKind`` maps to one comparison function, so adding a kind means
adding one entry to ``_COMPARATORS``.  Every path fails closed: an empty
value, an empty candidate, an unknown kind or an invalid pattern never match.
"""

import logging
import re
from functools import lru_cache

from src.schema.models import MatchRule, MatchRuleKind


logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def _compile(pattern: str, case_sensitive: bool) -> re.Pattern | None:
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return re.compile(pattern, flags)
    except re.error as exc:
        logger.warning("Invalid regex rule %r never matches: %s", pattern, exc)
        return None


def _regex(candidate: str, value: str, case_sensitive: bool) -> bool:
    compiled = _compile(value, case_sensitive)
    return compiled is not None and compiled.search(candidate) is not None


def _normalize(text: str, case_sensitive: bool) -> str:
    return text if case_sensitive else text.lower()


_COMPARATORS = {
    MatchRuleKind.CONTAINS: lambda c, v: v in c,
    MatchRuleKind.STARTS_WITH: lambda c, v: c.startswith(v),
    MatchRuleKind.ENDS_WITH: lambda c, v: c.endswith(v),
    MatchRuleKind.EXACT: lambda c, v: c == v,
}


def matches(rule: MatchRule, candidate: str | None) -> bool:
    """Return True if *candidate* satisfies *rule*.

    Examples:
        contains "men balance" (case-insensitive) vs "MEN BALANCE PRO" -> True
        contains "" vs anything -> False
        anything vs "" -> False
    """
    if not candidate or not isinstance(rule.value, str) or not rule.value.strip():
        return False
    if rule.kind is MatchRuleKind.REGEX:
        return _regex(candidate, rule.value, rule.case_sensitive)
    compare = _COMPARATORS.get(rule.kind)
    if compare is None:
        return False
    return compare(_normalize(candidate, rule.case_sensitive),
                   _normalize(rule.value, rule.case_sensitive))


def matches_any(rules, candidate: str | None) -> bool:
    """Logical OR across *rules*; an empty rule list never matches."""
    return any(matches(rule, candidate) for rule in rules)
