from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from models import Rule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryRule:
    pattern: re.Pattern[str]
    category: str

    def matches(self, description: str) -> bool:
        return self.pattern.search(description) is not None


def _rule(pattern: str, category: str) -> CategoryRule:
    return CategoryRule(re.compile(pattern, re.IGNORECASE), category)


# Order matters: the first matching rule wins, earlier entries shadow later ones.
DEFAULT_RULES: tuple[CategoryRule, ...] = (
    _rule(r"grab", "Transport"),
    _rule(r"taxi|cab", "Transport"),
    _rule(r"fairprice|redmart|cold storage", "Groceries"),
    _rule(r"shopee|lazada|amazon", "Shopping"),
    _rule(r"paynow", "Transfers"),
    _rule(r"salary|payroll|income", "Income"),
    _rule(r"coffee|starbucks", "Food"),
    _rule(r"food|restaurant|dining", "Food"),
)


class Categorizer:
    def __init__(self, rules: Sequence[CategoryRule] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    @classmethod
    def from_rules(cls, rows: Iterable[Rule]) -> Categorizer:
        """Build a categorizer from persisted rules, lowest priority value first."""
        compiled: list[CategoryRule] = []
        for row in sorted(rows, key=lambda r: (r.priority, r.id or 0)):
            try:
                compiled.append(_rule(row.pattern, row.category))
            except re.error:
                logger.warning(
                    "categorizer: skipping rule id=%s with invalid pattern %r",
                    row.id,
                    row.pattern,
                )
        return cls(compiled)

    def categorize(self, description: Optional[str]) -> Optional[str]:
        if not description:
            return None
        for rule in self.rules:
            if rule.matches(description):
                return rule.category
        return None


default_categorizer = Categorizer()


def categorize(description: Optional[str]) -> Optional[str]:
    return default_categorizer.categorize(description)
