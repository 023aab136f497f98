"""
Configuration Loader (``dairy_config.loader``).

Responsibility
--------------
Loads the YAML fragments of one configuration set and parses them into
the frozen dataclasses of ``dairy_config.schema``.  Callers obtain
configuration through ``dairy_config.get_active_config()``; nothing else
should read these files.

Invariants enforced
-------------------
* Required keys are never defaulted: a missing ``name`` or ``tag`` raises
  ``KeyError``.
* Amounts are parsed from strings into ``Decimal``; floats in YAML are
  rejected.
* ``compute_checksum`` is deterministic over the raw fragment data.

Failure modes
-------------
* Missing fragment file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structural problems  -> ``ValueError`` from ``validate_configuration``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from dairy_config.schema import (
    ClassificationRule,
    EngineSettings,
    LedgerConfiguration,
    LedgerDefinition,
    OutstandingCategoryConfig,
)

FRAGMENTS = (
    "root.yaml",
    "chart_of_accounts.yaml",
    "classification.yaml",
    "outstanding.yaml",
)

LEDGER_TYPES = frozenset({"Asset", "Liability", "Capital", "Income", "Expense"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, float):
        raise ValueError(f"{field_name}: quote decimal amounts in YAML, got {value!r}")
    return Decimal(str(value))


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    defaults = EngineSettings()
    return EngineSettings(
        balance_tolerance=parse_decimal(
            data.get("balance_tolerance", defaults.balance_tolerance),
            "balance_tolerance",
        ),
        imbalance_tolerance=parse_decimal(
            data.get("imbalance_tolerance", defaults.imbalance_tolerance),
            "imbalance_tolerance",
        ),
        max_conflict_retries=int(
            data.get("max_conflict_retries", defaults.max_conflict_retries)
        ),
        abstract_page_size=int(
            data.get("abstract_page_size", defaults.abstract_page_size)
        ),
        financial_year_start_month=int(
            data.get("financial_year_start_month", defaults.financial_year_start_month)
        ),
        welfare_recovery_amount=parse_decimal(
            data.get("welfare_recovery_amount", defaults.welfare_recovery_amount),
            "welfare_recovery_amount",
        ),
        welfare_ledger=data.get("welfare_ledger", defaults.welfare_ledger),
    )


def parse_ledger_definition(data: dict[str, Any]) -> LedgerDefinition:
    """Parse a LedgerDefinition from a dict."""
    return LedgerDefinition(
        name=data["name"],
        ledger_type=data["ledger_type"],
        category=data.get("category", data["ledger_type"]),
        parent_group=data.get("parent_group"),
        opening_balance=parse_decimal(
            data.get("opening_balance", "0"), f"{data['name']}.opening_balance"
        ),
        opening_side=data.get("opening_side"),
    )


def parse_classification_rule(data: dict[str, Any]) -> ClassificationRule:
    """Parse a ClassificationRule from a dict."""
    return ClassificationRule(
        tag=data["tag"],
        ledger_type=data.get("ledger_type"),
        category=data.get("category"),
        name_contains=data.get("name_contains"),
    )


def parse_outstanding_category(data: dict[str, Any]) -> OutstandingCategoryConfig:
    return OutstandingCategoryConfig(
        category=data["category"],
        advance_ledger=data["advance_ledger"],
        priority=int(data["priority"]),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def validate_configuration(config: LedgerConfiguration) -> list[str]:
    """Return every structural problem found; an empty list means valid."""
    errors: list[str] = []
    settings = config.settings

    names = [d.name for d in config.ledgers]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        errors.append(f"Duplicate ledger names: {duplicates}")

    for definition in config.ledgers:
        if definition.ledger_type not in LEDGER_TYPES:
            errors.append(
                f"Ledger '{definition.name}': unknown type {definition.ledger_type!r}"
            )
        if definition.opening_side not in (None, "Dr", "Cr"):
            errors.append(
                f"Ledger '{definition.name}': opening_side must be Dr or Cr"
            )
        if definition.opening_balance < 0:
            errors.append(f"Ledger '{definition.name}': negative opening balance")

    for rule in config.classification_rules:
        if rule.ledger_type is not None and rule.ledger_type not in LEDGER_TYPES:
            errors.append(f"Rule '{rule.tag}': unknown type {rule.ledger_type!r}")

    categories = [c.category for c in config.outstanding_categories]
    if len(set(categories)) != len(categories):
        errors.append(f"Duplicate outstanding categories: {categories}")
    priorities = [c.priority for c in config.outstanding_categories]
    if len(set(priorities)) != len(priorities):
        errors.append(f"Duplicate outstanding priorities: {priorities}")
    for category in config.outstanding_categories:
        if config.ledger(category.advance_ledger) is None:
            errors.append(
                f"Outstanding '{category.category}': advance ledger "
                f"'{category.advance_ledger}' is not in the chart"
            )

    if config.outstanding_categories and config.ledger(settings.welfare_ledger) is None:
        errors.append(f"Welfare ledger '{settings.welfare_ledger}' is not in the chart")
    if settings.max_conflict_retries < 1:
        errors.append("max_conflict_retries must be at least 1")
    if settings.abstract_page_size < 1:
        errors.append("abstract_page_size must be at least 1")
    if not 1 <= settings.financial_year_start_month <= 12:
        errors.append("financial_year_start_month must be 1-12")
    if settings.balance_tolerance < 0 or settings.imbalance_tolerance < 0:
        errors.append("tolerances must not be negative")

    return errors


def assemble_from_directory(set_dir: Path) -> LedgerConfiguration:
    """
    Read every fragment of one configuration set and build the
    LedgerConfiguration.  ``root.yaml`` is required; the other fragments
    are optional and default to empty.
    """
    root_file = set_dir / "root.yaml"
    if not root_file.exists():
        raise FileNotFoundError(f"root.yaml not found in {set_dir}")

    raw: dict[str, Any] = {}
    for fragment in FRAGMENTS:
        path = set_dir / fragment
        raw[fragment] = load_yaml_file(path) if path.exists() else {}

    root = raw["root.yaml"]
    return LedgerConfiguration(
        config_id=root["config_id"],
        version=int(root.get("version", 1)),
        organisation=root.get("organisation", ""),
        currency=root.get("currency", "INR"),
        checksum=compute_checksum(raw),
        settings=parse_settings(root.get("settings", {})),
        ledgers=tuple(
            parse_ledger_definition(d)
            for d in raw["chart_of_accounts.yaml"].get("ledgers", [])
        ),
        classification_rules=tuple(
            parse_classification_rule(r)
            for r in raw["classification.yaml"].get("rules", [])
        ),
        outstanding_categories=tuple(
            parse_outstanding_category(c)
            for c in raw["outstanding.yaml"].get("categories", [])
        ),
    )
