"""
Program Credit Formulas

Non-WOTC hiring programs (state credits, enterprise zones, rehabilitation
credits) are calculated from the program's leverage type instead of the
fixed WOTC table. Each leverage type maps to one pure formula function in
FORMULAS; ProgramCreditCalculator applies the program cap and lifecycle
status around whichever formula the program selects.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
import logging

from calculator.credit_records import (
    CreditStatus,
    ProgramCreditCalculation,
    utcnow,
)
from calculator.decimal_math import (
    Numeric,
    capped,
    format_money,
    format_percentage,
    money,
    percent,
    to_decimal,
)
from calculator.wotc_calculator import HourTiers, non_negative
from config.settings import EngineSettings, get_settings

logger = logging.getLogger(__name__)


class CalculationMethod(str, Enum):
    """Leverage types a program can use to compute its credit."""
    WAGE_PERCENTAGE = "wage_percentage"
    FLAT_PER_EMPLOYEE = "flat_per_employee"
    TIERED_BY_HOURS = "tiered_by_hours"
    PERCENTAGE_OF_EXPENDITURE = "percentage_of_expenditure"
    PER_EMPLOYEE_FLAT_PLUS_WAGE = "per_employee_flat_plus_wage"


# Fields a program must configure for each method
REQUIRED_FIELDS: Dict[CalculationMethod, Tuple[str, ...]] = {
    CalculationMethod.WAGE_PERCENTAGE: ("rate",),
    CalculationMethod.FLAT_PER_EMPLOYEE: ("flat_amount",),
    CalculationMethod.TIERED_BY_HOURS: (),
    CalculationMethod.PERCENTAGE_OF_EXPENDITURE: ("rate",),
    CalculationMethod.PER_EMPLOYEE_FLAT_PLUS_WAGE: ("flat_amount", "rate"),
}


@dataclass(frozen=True)
class ProgramFormula:
    """
    Formula configuration for one program.

    Rates are decimals (0.20 = 20%). Unset tier fields on a tiered program
    fall back to the engine's WOTC hour tiers.
    """
    program_id: str
    leverage_type: CalculationMethod
    name: str = ""
    state: Optional[str] = None
    rate: Optional[Decimal] = None
    wage_cap: Optional[Decimal] = None
    max_credit: Optional[Decimal] = None
    flat_amount: Optional[Decimal] = None
    partial_rate: Optional[Decimal] = None
    full_rate: Optional[Decimal] = None
    minimum_hours: Optional[int] = None
    full_rate_hours: Optional[int] = None

    def __post_init__(self) -> None:
        missing = [f for f in REQUIRED_FIELDS[self.leverage_type] if getattr(self, f) is None]
        if missing:
            raise ValueError(
                f"Program {self.program_id} ({self.leverage_type.value}) is missing: {', '.join(missing)}"
            )
        for attr in ("rate", "wage_cap", "max_credit", "flat_amount", "partial_rate", "full_rate"):
            value = getattr(self, attr)
            if value is not None and value < 0:
                raise ValueError(f"Program {self.program_id}: {attr} cannot be negative")
        if (
            self.minimum_hours is not None
            and self.full_rate_hours is not None
            and self.minimum_hours > self.full_rate_hours
        ):
            raise ValueError(
                f"Program {self.program_id}: minimum_hours ({self.minimum_hours}) "
                f"exceeds full_rate_hours ({self.full_rate_hours})"
            )

    def tiers(self, settings: EngineSettings) -> HourTiers:
        """Hour tiers for this program, defaulting to the engine settings."""
        defaults = HourTiers.from_settings(settings, minimum_hours=self.minimum_hours)
        return HourTiers(
            minimum_hours=defaults.minimum_hours,
            full_rate_hours=defaults.full_rate_hours if self.full_rate_hours is None else self.full_rate_hours,
            partial_rate=defaults.partial_rate if self.partial_rate is None else self.partial_rate,
            full_rate=defaults.full_rate if self.full_rate is None else self.full_rate,
        )

    @classmethod
    def from_dict(cls, program_id: str, values: Mapping[str, Any]) -> "ProgramFormula":
        """Build a formula from a reference-data entry."""
        raw_type = values.get("leverage_type")
        try:
            leverage_type = CalculationMethod(raw_type)
        except ValueError:
            raise ValueError(f"Program {program_id} has unknown leverage_type {raw_type!r}") from None

        def dec(key: str) -> Optional[Decimal]:
            value = values.get(key)
            return None if value is None else Decimal(str(value))

        def integer(key: str) -> Optional[int]:
            value = values.get(key)
            return None if value is None else int(value)

        return cls(
            program_id=program_id,
            leverage_type=leverage_type,
            name=str(values.get("name", program_id)),
            state=values.get("state"),
            rate=dec("rate"),
            wage_cap=dec("wage_cap"),
            max_credit=dec("max_credit"),
            flat_amount=dec("flat_amount"),
            partial_rate=dec("partial_rate"),
            full_rate=dec("full_rate"),
            minimum_hours=integer("minimum_hours"),
            full_rate_hours=integer("full_rate_hours"),
        )


@dataclass(frozen=True)
class FormulaInputs:
    hours: Decimal
    wages: Decimal
    expenditure: Optional[Decimal]
    tiers: HourTiers


@dataclass(frozen=True)
class FormulaOutcome:
    """Uncapped result of a formula."""
    calculated_amount: Decimal
    rate_applied: Decimal
    wages_used: Decimal
    description: str
    details: Dict[str, Any]


def _wage_percentage(formula: ProgramFormula, inputs: FormulaInputs) -> FormulaOutcome:
    wages_used = capped(inputs.wages, formula.wage_cap)
    description = f"{format_percentage(formula.rate)} of wages"
    if formula.wage_cap is not None:
        description += f" (capped at {format_money(formula.wage_cap)})"
    return FormulaOutcome(
        calculated_amount=percent(wages_used, formula.rate),
        rate_applied=formula.rate,
        wages_used=wages_used,
        description=description,
        details={"wageCap": None if formula.wage_cap is None else str(formula.wage_cap)},
    )


def _flat_per_employee(formula: ProgramFormula, inputs: FormulaInputs) -> FormulaOutcome:
    return FormulaOutcome(
        calculated_amount=money(formula.flat_amount),
        rate_applied=Decimal("0"),
        wages_used=Decimal("0"),
        description=f"{format_money(formula.flat_amount)} per qualifying employee",
        details={"flatAmount": str(formula.flat_amount)},
    )


def _tiered_by_hours(formula: ProgramFormula, inputs: FormulaInputs) -> FormulaOutcome:
    tiers = inputs.tiers
    wages_used = capped(inputs.wages, formula.wage_cap)
    if inputs.hours < tiers.minimum_hours:
        # Forward estimate at the partial rate until minimum hours are reached
        rate_applied = tiers.partial_rate
        threshold = f"Under {tiers.minimum_hours} hours (projected at {format_percentage(rate_applied)})"
    else:
        rate_applied = tiers.rate_for(inputs.hours)
        threshold = f"{tiers.label_for(inputs.hours)} hours ({format_percentage(rate_applied)} rate)"
    return FormulaOutcome(
        calculated_amount=percent(wages_used, rate_applied),
        rate_applied=rate_applied,
        wages_used=wages_used,
        description=f"{format_percentage(rate_applied)} of wages by hours tier",
        details={"hourThreshold": threshold, "hoursTier": tiers.label_for(inputs.hours)},
    )


def _percentage_of_expenditure(formula: ProgramFormula, inputs: FormulaInputs) -> FormulaOutcome:
    if inputs.expenditure is None:
        raise ValueError(f"Program {formula.program_id} requires an expenditure amount")
    return FormulaOutcome(
        calculated_amount=percent(inputs.expenditure, formula.rate),
        rate_applied=formula.rate,
        wages_used=Decimal("0"),
        description=f"{format_percentage(formula.rate)} of qualified expenditure",
        details={"expenditureBased": True},
    )


def _per_employee_flat_plus_wage(formula: ProgramFormula, inputs: FormulaInputs) -> FormulaOutcome:
    wages_used = capped(inputs.wages, formula.wage_cap)
    wage_component = percent(wages_used, formula.rate)
    flat_component = money(formula.flat_amount)
    return FormulaOutcome(
        calculated_amount=flat_component + wage_component,
        rate_applied=formula.rate,
        wages_used=wages_used,
        description=f"{format_money(formula.flat_amount)} flat + {format_percentage(formula.rate)} of wages",
        details={"flatComponent": str(flat_component), "wageComponent": str(wage_component)},
    )


FormulaFunction = Callable[[ProgramFormula, FormulaInputs], FormulaOutcome]

FORMULAS: Dict[CalculationMethod, FormulaFunction] = {
    CalculationMethod.WAGE_PERCENTAGE: _wage_percentage,
    CalculationMethod.FLAT_PER_EMPLOYEE: _flat_per_employee,
    CalculationMethod.TIERED_BY_HOURS: _tiered_by_hours,
    CalculationMethod.PERCENTAGE_OF_EXPENDITURE: _percentage_of_expenditure,
    CalculationMethod.PER_EMPLOYEE_FLAT_PLUS_WAGE: _per_employee_flat_plus_wage,
}

_missing_formulas = set(CalculationMethod) - set(FORMULAS)
if _missing_formulas:
    raise RuntimeError(
        f"No formula registered for: {', '.join(sorted(m.value for m in _missing_formulas))}"
    )


class ProgramCreditCalculator:
    """Calculates ProgramCreditCalculation records through FORMULAS."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or get_settings()
        self._clock = clock

    def calculate(
        self,
        formula: ProgramFormula,
        hours_worked: Numeric,
        wages_earned: Numeric,
        expenditure: Optional[Numeric] = None,
        existing: Optional[ProgramCreditCalculation] = None,
        screening_id: Optional[str] = None,
    ) -> ProgramCreditCalculation:
        """
        Calculate a program credit.

        Args:
            formula: Program formula configuration
            hours_worked: Hours worked by the employee
            wages_earned: Wages earned by the employee
            expenditure: Qualified expenditure (percentage_of_expenditure only)
            existing: Previously stored calculation being re-projected
            screening_id: Screening the calculation belongs to

        Returns:
            A new ProgramCreditCalculation

        Raises:
            CreditRecalculationError: existing record is claimed or denied
            ValueError: negative inputs, or a missing expenditure
        """
        if existing is not None:
            if not isinstance(existing, ProgramCreditCalculation) or existing.program_id != formula.program_id:
                raise ValueError(
                    f"Existing calculation is for {existing.target}, not {formula.program_id}"
                )
            existing.ensure_recalculable()
            screening_id = screening_id or existing.screening_id

        hours = non_negative("hours_worked", hours_worked)
        wages = non_negative("wages_earned", wages_earned)
        expenditure_used = None if expenditure is None else non_negative("expenditure", expenditure)
        tiers = formula.tiers(self.settings)

        outcome = FORMULAS[formula.leverage_type](
            formula, FormulaInputs(hours=hours, wages=wages, expenditure=expenditure_used, tiers=tiers)
        )

        capped_amount = money(capped(outcome.calculated_amount, formula.max_credit))
        status = self._status(formula, tiers, hours)

        logger.info(
            f"Program credit {formula.program_id} ({formula.leverage_type.value}): "
            f"calculated={outcome.calculated_amount}, final={capped_amount}, status={status.value}"
        )
        return ProgramCreditCalculation(
            program_id=formula.program_id,
            calculation_method=formula.leverage_type.value,
            method_description=outcome.description,
            rate_applied=to_decimal(outcome.rate_applied),
            wages_used=outcome.wages_used,
            hours_used=hours,
            expenditure_used=expenditure_used,
            calculated_amount=outcome.calculated_amount,
            capped_amount=capped_amount,
            final_credit_amount=capped_amount,
            status=status,
            details=outcome.details,
            screening_id=screening_id,
            calculated_at=self._clock(),
        )

    @staticmethod
    def _status(formula: ProgramFormula, tiers: HourTiers, hours: Decimal) -> CreditStatus:
        if formula.leverage_type == CalculationMethod.TIERED_BY_HOURS:
            threshold: Optional[int] = tiers.minimum_hours
        else:
            threshold = formula.minimum_hours
        if threshold is not None and hours < threshold:
            return CreditStatus.PROJECTED
        return CreditStatus.IN_PROGRESS
