"""
Reporting Configuration Schema.

Holds the statement classification table and the few knobs the report
builders need.  Built from the active LedgerConfiguration, or from the
packaged default set.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from dairy_config import get_active_config
from dairy_config.schema import ClassificationRule, LedgerConfiguration
from dairy_kernel.logging_config import get_logger

logger = get_logger("modules.reporting.config")


@dataclass(frozen=True)
class ReportingConfig:
    """
    Configuration for the reporting module.

    ``cash_categories`` are the ledger categories treated as cash and bank
    by the Receipts & Disbursement, Day Book and Cash Book reports.
    """

    rules: tuple[ClassificationRule, ...] = ()
    organisation: str = "Dairy Cooperative Society"
    currency: str = "INR"
    cash_categories: tuple[str, ...] = ("Cash", "Bank")
    cash_book_ledger: str = "Cash"
    imbalance_tolerance: Decimal = Decimal("0.01")
    abstract_page_size: int = 500
    financial_year_start_month: int = 4

    def __post_init__(self):
        if self.imbalance_tolerance < 0:
            raise ValueError("imbalance_tolerance cannot be negative")
        if self.abstract_page_size < 1:
            raise ValueError("abstract_page_size must be at least 1")

    @classmethod
    def from_configuration(cls, config: LedgerConfiguration) -> Self:
        settings = config.settings
        return cls(
            rules=config.classification_rules,
            organisation=config.organisation,
            currency=config.currency,
            imbalance_tolerance=settings.imbalance_tolerance,
            abstract_page_size=settings.abstract_page_size,
            financial_year_start_month=settings.financial_year_start_month,
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config from the packaged default configuration set."""
        logger.info("reporting_config_created_with_defaults")
        return cls.from_configuration(get_active_config())
