"""
Batch credit recalculation.

Recalculates credits for many employees at once (e.g. after a payroll
import). Each employee is isolated: one failing calculation is recorded
on its own BatchItemResult and never aborts the rest of the batch.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from calculator.credit_records import AnyCreditCalculation, CreditCalculation, ProgramCreditCalculation
from calculator.decimal_math import Numeric
from calculator.program_formulas import ProgramCreditCalculator, ProgramFormula
from calculator.wotc_calculator import WOTCCreditCalculator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecalculationRequest:
    """
    One employee's hours/wages update.

    ``target`` is a WOTC target group code or a ProgramFormula.
    """
    key: str
    target: Union[str, ProgramFormula]
    hours_worked: Numeric
    wages_earned: Numeric
    second_year_hours: Optional[Numeric] = None
    second_year_wages: Optional[Numeric] = None
    expenditure: Optional[Numeric] = None
    existing: Optional[AnyCreditCalculation] = None
    screening_id: Optional[str] = None


@dataclass(frozen=True)
class BatchItemResult:
    key: str
    success: bool
    calculation: Optional[AnyCreditCalculation] = None
    error_type: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "success": self.success,
            "calculation": self.calculation.to_dict() if self.calculation else None,
            "errorType": self.error_type,
            "error": self.error,
        }


@dataclass
class BatchResult:
    """Per-item results in request order."""
    items: List[BatchItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[BatchItemResult]:
        return [item for item in self.items if item.success]

    @property
    def failed(self) -> List[BatchItemResult]:
        return [item for item in self.items if not item.success]

    @property
    def total_credit(self) -> Decimal:
        """Sum of current credit amounts across successful items."""
        total = Decimal("0.00")
        for item in self.succeeded:
            calc = item.calculation
            if isinstance(calc, CreditCalculation):
                total += calc.total_actual_credit
            elif isinstance(calc, ProgramCreditCalculation):
                total += calc.final_credit_amount
        return total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": len(self.items),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "totalCredit": str(self.total_credit),
            "items": [item.to_dict() for item in self.items],
        }


def _recalculate_one(
    request: RecalculationRequest,
    calculator: WOTCCreditCalculator,
    program_calculator: ProgramCreditCalculator,
) -> BatchItemResult:
    try:
        if isinstance(request.target, ProgramFormula):
            calculation: AnyCreditCalculation = program_calculator.calculate(
                request.target,
                request.hours_worked,
                request.wages_earned,
                expenditure=request.expenditure,
                existing=request.existing,
                screening_id=request.screening_id,
            )
        else:
            calculation = calculator.calculate(
                request.target,
                request.hours_worked,
                request.wages_earned,
                second_year_hours=request.second_year_hours,
                second_year_wages=request.second_year_wages,
                existing=request.existing,
                screening_id=request.screening_id,
            )
    except Exception as e:
        logger.warning(f"Recalculation failed for {request.key}: {type(e).__name__}: {e}")
        return BatchItemResult(
            key=request.key,
            success=False,
            error_type=type(e).__name__,
            error=str(e),
        )
    return BatchItemResult(key=request.key, success=True, calculation=calculation)


def recalculate_credits(
    requests: Sequence[RecalculationRequest],
    calculator: WOTCCreditCalculator,
    max_workers: Optional[int] = None,
    program_calculator: Optional[ProgramCreditCalculator] = None,
) -> BatchResult:
    """
    Recalculate credits for a batch of employees.

    Args:
        requests: Hours/wages updates, one per employee credit
        calculator: WOTC calculator holding the reference table
        max_workers: Thread count; defaults to settings.batch_max_workers
        program_calculator: Calculator for ProgramFormula targets

    Returns:
        BatchResult with one item per request, in request order
    """
    if max_workers is None:
        max_workers = calculator.settings.batch_max_workers
    if max_workers < 1:
        raise ValueError("max_workers must be at least 1")
    program_calculator = program_calculator or ProgramCreditCalculator(settings=calculator.settings)

    if max_workers == 1 or len(requests) <= 1:
        items = [_recalculate_one(r, calculator, program_calculator) for r in requests]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            items = list(executor.map(
                lambda r: _recalculate_one(r, calculator, program_calculator), requests
            ))

    result = BatchResult(items=items)
    logger.info(
        f"Batch recalculation: {len(result.succeeded)} succeeded, {len(result.failed)} failed"
    )
    return result
