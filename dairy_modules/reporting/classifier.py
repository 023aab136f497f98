"""
Statement classifier.

Places each ledger in a statement section by walking an ordered rule
table; the first rule whose predicates all match wins.  A ledger no rule
matches is tagged Other instead of failing, so ledgers users add later
never break a report.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from dairy_config.schema import ClassificationRule
from dairy_kernel.domain.values import BalanceSnapshot, LedgerType
from dairy_kernel.logging_config import get_logger
from dairy_kernel.models.ledger import Ledger
from dairy_modules.reporting.models import SectionTag

logger = get_logger("modules.reporting.classifier")


@dataclass(frozen=True)
class _CompiledRule:
    tag: SectionTag
    ledger_type: LedgerType | None
    category: str | None
    name_contains: str | None

    def matches(self, ledger_type: LedgerType, category: str, name: str) -> bool:
        if self.ledger_type is not None and ledger_type is not self.ledger_type:
            return False
        if self.category is not None and (category or "").lower() != self.category:
            return False
        if self.name_contains is not None and self.name_contains not in name.lower():
            return False
        return True


def _compile(rule: ClassificationRule) -> _CompiledRule:
    return _CompiledRule(
        tag=SectionTag(rule.tag),
        ledger_type=LedgerType(rule.ledger_type) if rule.ledger_type else None,
        category=rule.category.lower() if rule.category else None,
        name_contains=rule.name_contains.lower() if rule.name_contains else None,
    )


class StatementClassifier:
    """
    Ordered rule table over (type, category, name substring).

    Raises ValueError at construction for a rule naming an unknown tag or
    ledger type.
    """

    def __init__(self, rules: Iterable[ClassificationRule]):
        self._rules = tuple(_compile(rule) for rule in rules)

    def __len__(self) -> int:
        return len(self._rules)

    def classify_parts(
        self, ledger_type: LedgerType | str, category: str, name: str
    ) -> SectionTag:
        ledger_type = LedgerType(ledger_type)
        for rule in self._rules:
            if rule.matches(ledger_type, category, name):
                return rule.tag
        logger.debug(
            "ledger_unclassified",
            extra={"ledger_name": name, "ledger_type": ledger_type.value},
        )
        return SectionTag.OTHER

    def classify(self, ledger: Ledger) -> SectionTag:
        return self.classify_parts(ledger.ledger_type, ledger.category, ledger.name)

    def classify_snapshot(self, snapshot: BalanceSnapshot) -> SectionTag:
        return self.classify_parts(
            snapshot.ledger_type, snapshot.category, snapshot.ledger_name
        )
