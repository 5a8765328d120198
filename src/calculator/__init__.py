from .decimal_math import money, percent, to_decimal
from .target_groups import TargetGroupDefinition, TargetGroupTable, UnknownTargetGroupError
from .credit_records import (
    CreditCalculation,
    CreditRecalculationError,
    CreditStatus,
    CreditTransitionError,
    ProgramCreditCalculation,
    SecondYearCredit,
)
from .wotc_calculator import HourTiers, WOTCCreditCalculator
from .program_formulas import (
    FORMULAS,
    CalculationMethod,
    ProgramCreditCalculator,
    ProgramFormula,
)
from .batch import BatchItemResult, BatchResult, RecalculationRequest, recalculate_credits

__all__ = [
    "money",
    "percent",
    "to_decimal",
    "TargetGroupDefinition",
    "TargetGroupTable",
    "UnknownTargetGroupError",
    "CreditCalculation",
    "CreditRecalculationError",
    "CreditStatus",
    "CreditTransitionError",
    "ProgramCreditCalculation",
    "SecondYearCredit",
    "HourTiers",
    "WOTCCreditCalculator",
    "FORMULAS",
    "CalculationMethod",
    "ProgramCreditCalculator",
    "ProgramFormula",
    "BatchItemResult",
    "BatchResult",
    "RecalculationRequest",
    "recalculate_credits",
]
