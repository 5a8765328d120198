"""
WOTC Credit Calculator

Turns a target group, hours worked and wages earned into a credit amount.

IRS WOTC credit rules:
- < 120 hours: no credit yet; a projection is made at the 25% rate
- 120-399 hours: 25% of qualified first-year wages (up to the wage cap)
- 400+ hours: 40% of qualified first-year wages (up to the wage cap)

The ceiling shown to employers before hours accrue is always 40% of the
qualified wage cap. Multi-year groups (long-term TANF) get a second,
independent calculation against the second-year wage cap; the two years
are never combined into one wage base.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
import logging

from calculator.credit_records import (
    CreditCalculation,
    CreditStatus,
    SecondYearCredit,
    utcnow,
)
from calculator.decimal_math import Numeric, ZERO, capped, percent, to_decimal
from calculator.target_groups import TargetGroupDefinition, TargetGroupTable
from config.settings import EngineSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HourTiers:
    """Hour thresholds and the rate earned in each tier."""
    minimum_hours: int
    full_rate_hours: int
    partial_rate: Decimal
    full_rate: Decimal

    def __post_init__(self) -> None:
        if self.minimum_hours < 0:
            raise ValueError(f"minimum_hours cannot be negative (got {self.minimum_hours})")
        if self.minimum_hours > self.full_rate_hours:
            raise ValueError(
                f"minimum_hours ({self.minimum_hours}) exceeds full_rate_hours ({self.full_rate_hours})"
            )

    @classmethod
    def from_settings(cls, settings: EngineSettings, minimum_hours: Optional[int] = None) -> "HourTiers":
        """
        Engine tiers, optionally with a per-group minimum.

        A minimum above the default full-rate threshold moves that threshold
        up to the minimum: once qualified, the group earns the full rate.
        """
        if minimum_hours is None:
            minimum_hours = settings.minimum_hours
        return cls(
            minimum_hours=minimum_hours,
            full_rate_hours=max(settings.full_rate_hours, minimum_hours),
            partial_rate=settings.partial_rate,
            full_rate=settings.full_rate,
        )

    def rate_for(self, hours: Decimal) -> Decimal:
        """Rate earned for the given hours; zero below the minimum."""
        if hours >= self.full_rate_hours:
            return self.full_rate
        if hours >= self.minimum_hours:
            return self.partial_rate
        return ZERO

    def label_for(self, hours: Decimal) -> str:
        """Hours tier label, e.g. '0-119', '120-399', '400+'."""
        if hours >= self.full_rate_hours:
            return f"{self.full_rate_hours}+"
        if hours >= self.minimum_hours:
            return f"{self.minimum_hours}-{self.full_rate_hours - 1}"
        return f"0-{max(self.minimum_hours - 1, 0)}"


def non_negative(name: str, value: Numeric) -> Decimal:
    """Convert an hours/wages input, rejecting negative values."""
    result = to_decimal(value)
    if result < 0:
        raise ValueError(f"{name} cannot be negative (got {value})")
    return result


class WOTCCreditCalculator:
    """
    Calculates WOTC credits from the target group reference table.

    Usage:
        calculator = WOTCCreditCalculator(table)
        calc = calculator.calculate("V", hours_worked=450, wages_earned=20000)
        calc.actual_credit_amount  # Decimal('2400.00') with the default table
    """

    def __init__(
        self,
        target_groups: Optional[TargetGroupTable] = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the calculator.

        Args:
            target_groups: Reference table; defaults to the configured year's table
            settings: Hour tier settings; defaults to get_settings()
            clock: Source of calculated_at timestamps
        """
        self.settings = settings or get_settings()
        if target_groups is None:
            # Import here to avoid circular imports
            from config.reference_loader import get_reference_loader
            target_groups = get_reference_loader().target_groups(self.settings.reference_year)
        self.target_groups = target_groups
        self._clock = clock

    def tiers_for(self, definition: TargetGroupDefinition) -> HourTiers:
        return HourTiers.from_settings(self.settings, minimum_hours=definition.hours_required)

    def max_credit_amount(self, code: str) -> Decimal:
        """Credit ceiling for a code: full rate x qualified wage cap."""
        definition = self.target_groups.require(code)
        return percent(definition.qualified_wage_cap, self.tiers_for(definition).full_rate)

    def calculate(
        self,
        code: str,
        hours_worked: Numeric,
        wages_earned: Numeric,
        second_year_hours: Optional[Numeric] = None,
        second_year_wages: Optional[Numeric] = None,
        existing: Optional[CreditCalculation] = None,
        screening_id: Optional[str] = None,
    ) -> CreditCalculation:
        """
        Calculate the credit for one target group.

        Args:
            code: Target group code (e.g. "V", "IV-A")
            hours_worked: First-year hours
            wages_earned: First-year wages
            second_year_hours: Second-year hours (multi-year groups only)
            second_year_wages: Second-year wages (multi-year groups only)
            existing: Previously stored calculation being re-projected
            screening_id: Screening the calculation belongs to

        Returns:
            A new CreditCalculation; ``existing`` is never modified

        Raises:
            CreditRecalculationError: existing record is claimed or denied
            UnknownTargetGroupError: code is not in the reference table
            ValueError: negative hours or wages
        """
        if existing is not None:
            if not isinstance(existing, CreditCalculation) or existing.target_group != code:
                raise ValueError(
                    f"Existing calculation is for {existing.target}, not {code}"
                )
            existing.ensure_recalculable()
            screening_id = screening_id or existing.screening_id

        definition = self.target_groups.require(code)
        hours = non_negative("hours_worked", hours_worked)
        wages = non_negative("wages_earned", wages_earned)
        tiers = self.tiers_for(definition)

        qualified_wages = capped(wages, definition.qualified_wage_cap)
        max_credit_amount = percent(definition.qualified_wage_cap, tiers.full_rate)

        if hours < tiers.minimum_hours:
            status = CreditStatus.PROJECTED
            credit_percentage = tiers.partial_rate
            projected = percent(qualified_wages, credit_percentage)
            actual = None
        else:
            status = CreditStatus.IN_PROGRESS
            credit_percentage = tiers.rate_for(hours)
            actual = percent(qualified_wages, credit_percentage)
            projected = actual

        second_year = self._second_year(definition, tiers, second_year_hours, second_year_wages)

        calculation = CreditCalculation(
            target_group=code,
            max_credit_amount=max_credit_amount,
            projected_credit_amount=projected,
            actual_credit_amount=actual,
            hours_worked=hours,
            wages_earned=wages,
            minimum_hours_required=tiers.minimum_hours,
            status=status,
            credit_percentage=credit_percentage,
            hours_tier=tiers.label_for(hours),
            qualified_wages=qualified_wages,
            second_year=second_year,
            screening_id=screening_id,
            calculated_at=self._clock(),
        )
        logger.info(
            f"WOTC credit {code}: {hours}h / ${wages} -> {status.value}, "
            f"projected={projected}, actual={actual}"
        )
        return calculation

    def _second_year(
        self,
        definition: TargetGroupDefinition,
        tiers: HourTiers,
        hours_worked: Optional[Numeric],
        wages_earned: Optional[Numeric],
    ) -> Optional[SecondYearCredit]:
        if wages_earned is None:
            return None
        if definition.second_year_wage_cap is None:
            logger.debug(f"Ignoring second-year wages for single-year group {definition.code}")
            return None
        if hours_worked is None:
            raise ValueError("second_year_hours is required when second_year_wages is given")

        hours = non_negative("second_year_hours", hours_worked)
        wages = non_negative("second_year_wages", wages_earned)
        wage_cap = definition.second_year_wage_cap
        qualified_wages = capped(wages, wage_cap)

        if definition.second_year_rate is not None:
            ceiling_rate = definition.second_year_rate
            earned_rate = definition.second_year_rate if hours >= tiers.minimum_hours else ZERO
            projection_rate = definition.second_year_rate
        else:
            ceiling_rate = tiers.full_rate
            earned_rate = tiers.rate_for(hours)
            projection_rate = tiers.partial_rate

        if hours < tiers.minimum_hours:
            credit_percentage = projection_rate
            actual = None
            projected = percent(qualified_wages, projection_rate)
        else:
            credit_percentage = earned_rate
            actual = percent(qualified_wages, earned_rate)
            projected = actual

        return SecondYearCredit(
            hours_worked=hours,
            wages_earned=wages,
            wage_cap=wage_cap,
            qualified_wages=qualified_wages,
            credit_percentage=credit_percentage,
            max_credit_amount=percent(wage_cap, ceiling_rate),
            projected_credit_amount=projected,
            actual_credit_amount=actual,
        )
