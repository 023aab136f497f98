"""
LedgerConfiguration schema.

YAML fragments under ``sets/<name>/`` are parsed into these types by the
loader and assembled by ``get_active_config()``.  Everything here is a
frozen dataclass; amounts are Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Chart of accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerDefinition:
    """A ledger seeded into a new book."""

    name: str
    ledger_type: str  # Asset, Liability, Capital, Income, Expense
    category: str
    parent_group: str | None = None
    opening_balance: Decimal = Decimal("0")
    opening_side: str | None = None  # Dr / Cr; None = natural side


# ---------------------------------------------------------------------------
# Statement classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClassificationRule:
    """
    One row of the statement classification table.

    Every predicate that is set must match; unset predicates match any
    ledger.  ``category`` and ``name_contains`` compare case-insensitively.
    """

    tag: str
    ledger_type: str | None = None
    category: str | None = None
    name_contains: str | None = None


# ---------------------------------------------------------------------------
# Outstanding recovery
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OutstandingCategoryConfig:
    category: str
    advance_ledger: str
    priority: int


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    balance_tolerance: Decimal = Decimal("0.01")
    imbalance_tolerance: Decimal = Decimal("0.01")
    max_conflict_retries: int = 3
    abstract_page_size: int = 500
    financial_year_start_month: int = 4
    welfare_recovery_amount: Decimal = Decimal("20")
    welfare_ledger: str = "Farmers Welfare Fund"


# ---------------------------------------------------------------------------
# Top-level configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfiguration:
    """The assembled, validated configuration returned at runtime."""

    config_id: str
    version: int
    organisation: str
    currency: str
    checksum: str
    settings: EngineSettings = field(default_factory=EngineSettings)
    ledgers: tuple[LedgerDefinition, ...] = ()
    classification_rules: tuple[ClassificationRule, ...] = ()
    outstanding_categories: tuple[OutstandingCategoryConfig, ...] = ()

    @property
    def recovery_priority(self) -> tuple[str, ...]:
        ordered = sorted(self.outstanding_categories, key=lambda c: c.priority)
        return tuple(c.category for c in ordered)

    @property
    def advance_ledgers(self) -> dict[str, str]:
        return {c.category: c.advance_ledger for c in self.outstanding_categories}

    def ledger(self, name: str) -> LedgerDefinition | None:
        for definition in self.ledgers:
            if definition.name == name:
                return definition
        return None
