"""
Credit Calculation Records

Derived credit amounts for a screening and their lifecycle:
- PROJECTED: hours have not reached the program minimum yet
- IN_PROGRESS: minimum hours reached, actual credit is accruing
- CLAIMED: finance has filed the credit (terminal)
- DENIED: certification was denied (terminal)

Claimed and denied records may already be reported to a tax authority, so
they are never recalculated.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreditStatus(str, Enum):
    """Lifecycle status of a credit calculation."""
    PROJECTED = "projected"
    IN_PROGRESS = "in_progress"
    CLAIMED = "claimed"
    DENIED = "denied"

    @property
    def is_locked(self) -> bool:
        """Locked records reject recalculation."""
        return self in (CreditStatus.CLAIMED, CreditStatus.DENIED)


# Valid status transitions
VALID_TRANSITIONS: Dict[CreditStatus, List[CreditStatus]] = {
    CreditStatus.PROJECTED: [CreditStatus.IN_PROGRESS, CreditStatus.DENIED],
    CreditStatus.IN_PROGRESS: [CreditStatus.CLAIMED, CreditStatus.DENIED],
    CreditStatus.CLAIMED: [],
    CreditStatus.DENIED: [],
}


class CreditRecalculationError(Exception):
    """Raised when new hours/wages arrive for a claimed or denied credit."""

    def __init__(self, target: str, status: CreditStatus):
        self.target = target
        self.status = status
        super().__init__(
            f"Credit for {target} is {status.value} and cannot be recalculated"
        )


class CreditTransitionError(Exception):
    """Raised when an invalid credit status transition is attempted."""

    def __init__(self, message: str, current_status: str, target_status: str):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message)


def _amount(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


@dataclass(frozen=True)
class SecondYearCredit:
    """Second-year credit for multi-year target groups, computed on its own cap."""
    hours_worked: Decimal
    wages_earned: Decimal
    wage_cap: Decimal
    qualified_wages: Decimal
    credit_percentage: Decimal
    max_credit_amount: Decimal
    projected_credit_amount: Decimal
    actual_credit_amount: Optional[Decimal]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hoursWorked": str(self.hours_worked),
            "wagesEarned": str(self.wages_earned),
            "wageCap": str(self.wage_cap),
            "qualifiedWages": str(self.qualified_wages),
            "creditPercentage": str(self.credit_percentage),
            "maxCreditAmount": str(self.max_credit_amount),
            "projectedCreditAmount": str(self.projected_credit_amount),
            "actualCreditAmount": _amount(self.actual_credit_amount),
        }


class _Lifecycle(ABC):
    """Shared status handling for WOTC and program credit records."""

    status: CreditStatus
    screening_id: Optional[str]

    @property
    @abstractmethod
    def target(self) -> str:
        """Target group code or program id the credit is for."""

    @property
    def is_locked(self) -> bool:
        return self.status.is_locked

    def _label(self) -> str:
        if self.screening_id:
            return f"{self.screening_id}/{self.target}"
        return self.target

    def ensure_recalculable(self) -> None:
        """Raise CreditRecalculationError if this record is claimed or denied."""
        if self.status.is_locked:
            logger.warning(f"Rejected recalculation of {self.status.value} credit {self._label()}")
            raise CreditRecalculationError(self._label(), self.status)

    def _transition(self, target: CreditStatus, **changes: Any):
        allowed = VALID_TRANSITIONS[self.status]
        if target not in allowed:
            raise CreditTransitionError(
                f"Cannot transition credit {self._label()} from {self.status.value} to {target.value}",
                current_status=self.status.value,
                target_status=target.value,
            )
        logger.info(f"Credit {self._label()}: {self.status.value} -> {target.value}")
        return replace(self, status=target, **changes)


@dataclass(frozen=True)
class CreditCalculation(_Lifecycle):
    """
    WOTC credit for one target group of one screening.

    A respondent with two qualifying codes gets two records; callers upsert
    them keyed by (screening_id, target_group).
    """
    target_group: str
    max_credit_amount: Decimal
    projected_credit_amount: Decimal
    actual_credit_amount: Optional[Decimal]
    hours_worked: Decimal
    wages_earned: Decimal
    minimum_hours_required: int
    status: CreditStatus
    credit_percentage: Decimal = Decimal("0")
    hours_tier: str = ""
    qualified_wages: Decimal = Decimal("0")
    second_year: Optional[SecondYearCredit] = None
    screening_id: Optional[str] = None
    calculated_at: datetime = field(default_factory=utcnow)
    claimed_at: Optional[datetime] = None

    @property
    def target(self) -> str:
        return self.target_group

    @property
    def total_actual_credit(self) -> Decimal:
        """First-year plus second-year actual credit (each capped separately)."""
        total = self.actual_credit_amount or Decimal("0.00")
        if self.second_year and self.second_year.actual_credit_amount is not None:
            total += self.second_year.actual_credit_amount
        return total

    def mark_claimed(self, claimed_at: Optional[datetime] = None) -> "CreditCalculation":
        """Finance filed the credit."""
        return self._transition(CreditStatus.CLAIMED, claimed_at=claimed_at or utcnow())

    def mark_denied(self) -> "CreditCalculation":
        """Certification was denied."""
        return self._transition(CreditStatus.DENIED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "screeningId": self.screening_id,
            "targetGroup": self.target_group,
            "maxCreditAmount": str(self.max_credit_amount),
            "projectedCreditAmount": str(self.projected_credit_amount),
            "actualCreditAmount": _amount(self.actual_credit_amount),
            "hoursWorked": str(self.hours_worked),
            "wagesEarned": str(self.wages_earned),
            "minimumHoursRequired": self.minimum_hours_required,
            "status": self.status.value,
            "creditPercentage": str(self.credit_percentage),
            "hoursTier": self.hours_tier,
            "qualifiedWages": str(self.qualified_wages),
            "secondYear": self.second_year.to_dict() if self.second_year else None,
            "totalActualCredit": str(self.total_actual_credit),
            "calculatedAt": self.calculated_at.isoformat(),
            "claimedAt": self.claimed_at.isoformat() if self.claimed_at else None,
        }


@dataclass(frozen=True)
class ProgramCreditCalculation(_Lifecycle):
    """Credit for a non-WOTC program, calculated from its leverage type."""
    program_id: str
    calculation_method: str
    method_description: str
    rate_applied: Decimal
    wages_used: Decimal
    hours_used: Decimal
    expenditure_used: Optional[Decimal]
    calculated_amount: Decimal
    capped_amount: Decimal
    final_credit_amount: Decimal
    status: CreditStatus
    details: Dict[str, Any] = field(default_factory=dict)
    screening_id: Optional[str] = None
    calculated_at: datetime = field(default_factory=utcnow)
    claimed_at: Optional[datetime] = None

    @property
    def target(self) -> str:
        return self.program_id

    def mark_claimed(self, claimed_at: Optional[datetime] = None) -> "ProgramCreditCalculation":
        return self._transition(CreditStatus.CLAIMED, claimed_at=claimed_at or utcnow())

    def mark_denied(self) -> "ProgramCreditCalculation":
        return self._transition(CreditStatus.DENIED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "screeningId": self.screening_id,
            "programId": self.program_id,
            "calculationMethod": self.calculation_method,
            "methodDescription": self.method_description,
            "rateApplied": str(self.rate_applied),
            "wagesUsed": str(self.wages_used),
            "hoursUsed": str(self.hours_used),
            "expenditureUsed": _amount(self.expenditure_used),
            "calculatedAmount": str(self.calculated_amount),
            "cappedAmount": str(self.capped_amount),
            "finalCreditAmount": str(self.final_credit_amount),
            "status": self.status.value,
            "details": dict(self.details),
            "calculatedAt": self.calculated_at.isoformat(),
            "claimedAt": self.claimed_at.isoformat() if self.claimed_at else None,
        }


AnyCreditCalculation = Union[CreditCalculation, ProgramCreditCalculation]
