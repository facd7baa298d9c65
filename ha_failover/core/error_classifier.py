"""Error Classifier - decide whether a failed turn is worth a failover.

Classification is driven by an ordered rule table rather than branching code:
each rule pairs a case-insensitive regex with the category it produces and,
optionally, the provider families it is restricted to. The first matching
rule wins, so table order encodes precedence:

1. Quota patterns (any provider) - quota beats capacity on a tie.
2. Provider-family overrides - e.g. Gemini-family providers retry capacity
   errors internally, so only their terminal "retry failed after N attempts"
   message counts; the intermediate "no capacity available" is ignored.
3. Generic capacity patterns.

New provider quirks are added by extending the table.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern, Sequence, Tuple

from .models import ErrorCategory

logger = logging.getLogger(__name__)

# Provider ids containing any of these substrings retry internally before
# surfacing a terminal error.
INTERNAL_RETRY_FAMILIES: Tuple[str, ...] = ("google", "gemini")


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the classification table."""

    pattern: Pattern[str]
    category: ErrorCategory
    providers: Tuple[str, ...] = ()
    reason: str = ""

    def applies_to(self, provider_id: Optional[str]) -> bool:
        if not self.providers:
            return True
        if not provider_id:
            return False
        provider_lower = provider_id.lower()
        return any(family in provider_lower for family in self.providers)

    def matches(self, error_text: str, provider_id: Optional[str]) -> bool:
        return self.applies_to(provider_id) and bool(self.pattern.search(error_text))


def _rule(
    regex: str,
    category: ErrorCategory,
    providers: Sequence[str] = (),
    reason: str = "",
) -> ClassificationRule:
    return ClassificationRule(
        pattern=re.compile(regex, re.IGNORECASE),
        category=category,
        providers=tuple(providers),
        reason=reason,
    )


QUOTA_RULES: Tuple[ClassificationRule, ...] = (
    _rule(r"429", ErrorCategory.QUOTA, reason="http 429"),
    _rule(r"quota exceeded", ErrorCategory.QUOTA),
    _rule(r"resource exhausted", ErrorCategory.QUOTA),
    _rule(r"rate limit", ErrorCategory.QUOTA),
    _rule(r"rate_limit", ErrorCategory.QUOTA),
    _rule(r"exceeded_current_quota", ErrorCategory.QUOTA),
    _rule(r"insufficient quota", ErrorCategory.QUOTA),
    _rule(r"billing.*exhausted", ErrorCategory.QUOTA),
)

PROVIDER_OVERRIDE_RULES: Tuple[ClassificationRule, ...] = (
    _rule(
        r"retry failed after \d+ attempts",
        ErrorCategory.CAPACITY,
        providers=INTERNAL_RETRY_FAMILIES,
        reason="terminal internal-retry failure",
    ),
    _rule(
        r"no capacity available",
        ErrorCategory.NONE,
        providers=INTERNAL_RETRY_FAMILIES,
        reason="intermediate capacity error, provider is still retrying",
    ),
)

CAPACITY_RULES: Tuple[ClassificationRule, ...] = (
    _rule(r"capacity constraints", ErrorCategory.CAPACITY),
    _rule(r"engine overloaded", ErrorCategory.CAPACITY),
    _rule(r"no capacity available", ErrorCategory.CAPACITY),
    _rule(r"server overloaded", ErrorCategory.CAPACITY),
    _rule(r"temporarily unavailable", ErrorCategory.CAPACITY),
)

DEFAULT_RULES: Tuple[ClassificationRule, ...] = (
    QUOTA_RULES + PROVIDER_OVERRIDE_RULES + CAPACITY_RULES
)


class ErrorClassifier:
    """Pure, table-driven classifier. Identical inputs give identical outputs."""

    def __init__(self, rules: Optional[Iterable[ClassificationRule]] = None):
        self.rules: Tuple[ClassificationRule, ...] = (
            tuple(rules) if rules is not None else DEFAULT_RULES
        )

    def match(
        self, error_text: Optional[str], provider_id: Optional[str] = None
    ) -> Optional[ClassificationRule]:
        """Return the first rule matching the error, or None."""
        if not error_text:
            return None
        for rule in self.rules:
            if rule.matches(error_text, provider_id):
                return rule
        return None

    def classify(
        self, error_text: Optional[str], provider_id: Optional[str] = None
    ) -> ErrorCategory:
        rule = self.match(error_text, provider_id)
        if rule is None:
            return ErrorCategory.NONE
        if rule.reason:
            logger.debug(
                "Classified error as %s for provider %s (%s)",
                rule.category.value,
                provider_id,
                rule.reason,
            )
        return rule.category

    def with_rules(self, *extra: ClassificationRule) -> "ErrorClassifier":
        """Return a classifier with extra rules evaluated before the defaults."""
        return ErrorClassifier(tuple(extra) + self.rules)


_default_classifier = ErrorClassifier()


def classify(
    error_text: Optional[str], provider_id: Optional[str] = None
) -> ErrorCategory:
    """Classify a turn's error text using the default rule table."""
    return _default_classifier.classify(error_text, provider_id)


def should_trigger_failover(
    error_text: Optional[str], provider_id: Optional[str] = None
) -> bool:
    return classify(error_text, provider_id) is not ErrorCategory.NONE
