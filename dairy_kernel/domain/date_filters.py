"""
Date filters -- report window presets resolved to concrete dates.

Responsibility:
    Turns a report preset (this month, last month, this quarter, this year,
    financial year, custom) into an inclusive ``DateRange``.  The kernel's
    balance and reporting APIs only ever take concrete dates; presets are
    resolved here, by the caller, against an explicit ``today``.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Every DateRange has start <= end.
    - The financial year runs from ``fy_start_month`` (April by default)
      to the last day of the month before it in the following year.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from dairy_kernel.exceptions import InvalidPeriodError

DEFAULT_FY_START_MONTH = 4


class DatePreset(str, Enum):
    THIS_MONTH = "thisMonth"
    LAST_MONTH = "lastMonth"
    THIS_QUARTER = "thisQuarter"
    THIS_YEAR = "thisYear"
    FINANCIAL_YEAR = "financialYear"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive calendar window."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidPeriodError(str(self.start), str(self.end))

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def day_before_start(self) -> date:
        return self.start - timedelta(days=1)


@dataclass(frozen=True, slots=True)
class FinancialYear:
    start_year: int
    label: str
    range: DateRange


def month_range(year: int, month: int) -> DateRange:
    last_day = calendar.monthrange(year, month)[1]
    return DateRange(date(year, month, 1), date(year, month, last_day))


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def financial_year_containing(
    day: date, fy_start_month: int = DEFAULT_FY_START_MONTH
) -> DateRange:
    start_year = day.year if day.month >= fy_start_month else day.year - 1
    return financial_year_range(start_year, fy_start_month)


def financial_year_range(
    start_year: int, fy_start_month: int = DEFAULT_FY_START_MONTH
) -> DateRange:
    end_year, end_month = _shift_month(start_year, fy_start_month, 11)
    return DateRange(
        date(start_year, fy_start_month, 1),
        month_range(end_year, end_month).end,
    )


def resolve_date_range(
    preset: DatePreset | str,
    today: date,
    custom_start: date | None = None,
    custom_end: date | None = None,
    fy_start_month: int = DEFAULT_FY_START_MONTH,
) -> DateRange:
    """
    Resolve a preset to an inclusive window relative to ``today``.

    For ``custom``, a missing start defaults to 1 January of today's year
    and a missing end defaults to today.

    Raises:
        InvalidPeriodError: unknown preset, or custom start after end.
    """
    try:
        preset = DatePreset(preset)
    except ValueError:
        raise InvalidPeriodError(
            str(custom_start), str(custom_end), f"unknown preset '{preset}'"
        ) from None

    if preset is DatePreset.THIS_MONTH:
        return month_range(today.year, today.month)

    if preset is DatePreset.LAST_MONTH:
        return month_range(*_shift_month(today.year, today.month, -1))

    if preset is DatePreset.THIS_QUARTER:
        first_month = (today.month - 1) // 3 * 3 + 1
        return DateRange(
            date(today.year, first_month, 1),
            month_range(today.year, first_month + 2).end,
        )

    if preset is DatePreset.THIS_YEAR:
        return DateRange(date(today.year, 1, 1), date(today.year, 12, 31))

    if preset is DatePreset.FINANCIAL_YEAR:
        return financial_year_containing(today, fy_start_month)

    return DateRange(
        custom_start or date(today.year, 1, 1),
        custom_end or today,
    )


def financial_years(
    today: date,
    years_back: int = 5,
    fy_start_month: int = DEFAULT_FY_START_MONTH,
) -> list[FinancialYear]:
    """Most recent first, labelled like ``FY 2024-25``."""
    current = financial_year_containing(today, fy_start_month).start.year
    years = []
    for start_year in range(current, current - years_back, -1):
        years.append(
            FinancialYear(
                start_year=start_year,
                label=f"FY {start_year}-{str(start_year + 1)[-2:]}",
                range=financial_year_range(start_year, fy_start_month),
            )
        )
    return years
