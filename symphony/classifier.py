"""Error classification.

Maps a phase's error text to an ``ErrorCategory`` using an ordered pattern
table. Order matters: categories are tried top to bottom and patterns
within a category in listed order; the first match wins. ``"Request
timeout"`` is therefore *transient* (matched by ``timeout``) even though
the *timeout* category also exists.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from symphony.models.enums import ErrorCategory

ERROR_PATTERNS: List[Tuple[ErrorCategory, List[Pattern]]] = [
    (ErrorCategory.TRANSIENT, [
        re.compile(r'rate.?limit', re.IGNORECASE),
        re.compile(r'timeout', re.IGNORECASE),
        re.compile(r'ETIMEDOUT', re.IGNORECASE),
        re.compile(r'ECONNRESET', re.IGNORECASE),
        re.compile(r'ECONNREFUSED', re.IGNORECASE),
        re.compile(r'503|502|504'),
        re.compile(r'temporarily unavailable', re.IGNORECASE),
        re.compile(r'try again', re.IGNORECASE),
        re.compile(r'overloaded', re.IGNORECASE),
        re.compile(r'too many requests', re.IGNORECASE),
    ]),
    (ErrorCategory.RESOURCE, [
        re.compile(r'ENOENT', re.IGNORECASE),
        re.compile(r'file not found', re.IGNORECASE),
        re.compile(r'no such file', re.IGNORECASE),
        re.compile(r'permission denied', re.IGNORECASE),
        re.compile(r'EACCES', re.IGNORECASE),
        re.compile(r'cannot find', re.IGNORECASE),
        re.compile(r'does not exist', re.IGNORECASE),
    ]),
    (ErrorCategory.LOGIC, [
        re.compile(r'assertion failed', re.IGNORECASE),
        re.compile(r'test.*(failed|error)', re.IGNORECASE),
        re.compile(r'expected.*but got', re.IGNORECASE),
        re.compile(r'typecheck.*error', re.IGNORECASE),
        re.compile(r'type error', re.IGNORECASE),
        re.compile(r'lint.*error', re.IGNORECASE),
        re.compile(r'eslint', re.IGNORECASE),
        re.compile(r'tsc.*error', re.IGNORECASE),
    ]),
    (ErrorCategory.PERMANENT, [
        re.compile(r'invalid configuration', re.IGNORECASE),
        re.compile(r'missing required', re.IGNORECASE),
        re.compile(r'dependency.*not installed', re.IGNORECASE),
        re.compile(r'syntax error', re.IGNORECASE),
        re.compile(r'syntaxerror', re.IGNORECASE),
        re.compile(r'cannot resolve', re.IGNORECASE),
        re.compile(r'module not found', re.IGNORECASE),
        re.compile(r'invalid.*json', re.IGNORECASE),
    ]),
    (ErrorCategory.TIMEOUT, [
        re.compile(r'phase timeout', re.IGNORECASE),
        re.compile(r'execution timeout', re.IGNORECASE),
        re.compile(r'max.?turns exceeded', re.IGNORECASE),
        re.compile(r'timed out', re.IGNORECASE),
        re.compile(r'deadline exceeded', re.IGNORECASE),
    ]),
]


@dataclass(frozen=True)
class Classification:
    category: ErrorCategory
    confidence: str
    matched_pattern: Optional[str]

    def to_dict(self):
        return {
            'category': self.category.value,
            'confidence': self.confidence,
            'matchedPattern': self.matched_pattern,
        }


UNCLASSIFIED = Classification(ErrorCategory.UNKNOWN, 'low', None)


def classify_error(error_message: Optional[str]) -> Classification:
    """Return the category of the first pattern matching *error_message*."""
    if not error_message or not isinstance(error_message, str):
        return UNCLASSIFIED
    for category, patterns in ERROR_PATTERNS:
        for pattern in patterns:
            if pattern.search(error_message):
                return Classification(category, 'high', pattern.pattern)
    return UNCLASSIFIED
