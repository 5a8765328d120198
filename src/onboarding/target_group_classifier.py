"""Target group classification.

Turns a respondent's completed sections into the target group codes they
qualify for, plus one primary group used as the headline credit. A
respondent can qualify for several groups at once (e.g. Veteran and SNAP);
all of them are kept.

Primary group policy: the qualifying code with the highest ``max_credit``;
on a tie, the code reached first in section order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging

from calculator.target_groups import TargetGroupTable
from onboarding.conditions import is_question_visible
from onboarding.questionnaire_models import (
    QuestionMetadata,
    QuestionnaireSection,
    SectionState,
    SectionStatus,
    sort_sections,
)
from onboarding.section_gating import evaluate_section

logger = logging.getLogger(__name__)

SUMMER_YOUTH_CODE = "XI"
SUMMER_YOUTH_AGES = (16, 17)
SUMMER_MONTHS = range(5, 10)  # May through September

DateInput = Union[date, datetime, str, None]
SectionStates = Union[Mapping[str, SectionState], Sequence[SectionState], None]


@dataclass(frozen=True)
class ClassificationDiagnostic:
    """A qualifying code that cannot be priced because it is not in the table."""
    code: str
    message: str
    section_id: Optional[str] = None
    question_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "sectionId": self.section_id,
            "questionId": self.question_id,
        }


@dataclass(frozen=True)
class ClassificationResult:
    """Qualifying target groups for one respondent."""
    target_groups: Tuple[str, ...] = ()
    primary_target_group: Optional[str] = None
    max_potential_credit: Decimal = Decimal("0")
    reasons: Tuple[str, ...] = ()
    diagnostics: Tuple[ClassificationDiagnostic, ...] = field(default_factory=tuple)

    @property
    def is_eligible(self) -> bool:
        return bool(self.target_groups)

    @property
    def reason(self) -> str:
        if not self.reasons:
            return "No qualifying target groups identified"
        return "; ".join(self.reasons)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isEligible": self.is_eligible,
            "targetGroups": list(self.target_groups),
            "primaryTargetGroup": self.primary_target_group,
            "maxPotentialCredit": str(self.max_potential_credit),
            "reason": self.reason,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def _to_date(value: DateInput) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def calculate_age(date_of_birth: date, on_date: date) -> int:
    """Age in whole years on a given date."""
    age = on_date.year - date_of_birth.year
    if (on_date.month, on_date.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def is_summer_youth(date_of_birth: DateInput, hire_date: DateInput) -> bool:
    """
    Age 16 or 17 on the hire date and hired May through September.

    Unparseable dates never qualify.
    """
    try:
        dob = _to_date(date_of_birth)
        hired = _to_date(hire_date)
    except ValueError:
        logger.debug(f"Ignoring unparseable dates for summer youth: {date_of_birth!r}, {hire_date!r}")
        return False
    if dob is None or hired is None:
        return False
    age = calculate_age(dob, hired)
    return SUMMER_YOUTH_AGES[0] <= age <= SUMMER_YOUTH_AGES[1] and hired.month in SUMMER_MONTHS


class TargetGroupClassifier:
    """
    Classifies completed answers into target group codes.

    Usage:
        classifier = TargetGroupClassifier(table)
        result = classifier.classify(questionnaire.sections, answers)
        result.primary_target_group  # "V"
    """

    def __init__(self, target_groups: Optional[TargetGroupTable] = None):
        if target_groups is None:
            # Import here to avoid circular imports
            from config.reference_loader import get_reference_loader
            target_groups = get_reference_loader().target_groups()
        self.target_groups = target_groups

    def normalize_target_group(self, value: Optional[str]) -> Optional[str]:
        """Map a code, name or alias ("veteran") to its code."""
        return self.target_groups.normalize(value)

    def classify(
        self,
        sections: Sequence[QuestionnaireSection],
        answers: Mapping[str, Any],
        section_states: SectionStates = None,
        date_of_birth: DateInput = None,
        hire_date: DateInput = None,
    ) -> ClassificationResult:
        """
        Classify a respondent.

        Args:
            sections: Questionnaire sections
            answers: Recorded answers
            section_states: Known section states; derived from the answers when omitted
            date_of_birth: Respondent date of birth, for the summer youth rule
            hire_date: Hire date, for the summer youth rule

        Returns:
            ClassificationResult; identical inputs give identical results
        """
        states = self._resolve_states(sections, answers, section_states)

        codes: List[str] = []
        reasons: List[str] = []
        diagnostics: List[ClassificationDiagnostic] = []

        def add(code: str, reason: str, section_id: Optional[str], question_id: Optional[str]) -> None:
            if code in codes:
                return
            codes.append(code)
            definition = self.target_groups.get(code)
            if definition is None:
                diagnostics.append(ClassificationDiagnostic(
                    code=code,
                    message=f"Target group {code!r} is not in the reference table",
                    section_id=section_id,
                    question_id=question_id,
                ))
                logger.warning(f"Qualifying target group {code!r} is not in the reference table")
            reasons.append(reason if definition is None else f"Qualified for {definition.name}")

        for section in sort_sections(list(sections)):
            state = states.get(section.id)
            if state is None or state.status != SectionStatus.COMPLETED:
                continue
            for question in self._triggered_questions(section, answers):
                raw = question.target_group
                code = self.target_groups.normalize(raw) or raw
                add(code, f"Qualified for {raw}", section.id, question.id)

        if is_summer_youth(date_of_birth, hire_date):
            add(
                SUMMER_YOUTH_CODE,
                "Summer youth employee (age 16-17, hired during summer)",
                None,
                None,
            )

        primary, max_credit = self._select_primary(codes)
        result = ClassificationResult(
            target_groups=tuple(codes),
            primary_target_group=primary,
            max_potential_credit=max_credit,
            reasons=tuple(reasons),
            diagnostics=tuple(diagnostics),
        )
        logger.info(f"Classified target groups {list(codes)} (primary: {primary})")
        return result

    def _resolve_states(
        self,
        sections: Sequence[QuestionnaireSection],
        answers: Mapping[str, Any],
        section_states: SectionStates,
    ) -> Dict[str, SectionState]:
        if section_states is None:
            return {s.id: evaluate_section(s, answers) for s in sections}
        if isinstance(section_states, Mapping):
            return dict(section_states)
        return {state.section_id: state for state in section_states}

    @staticmethod
    def _triggered_questions(
        section: QuestionnaireSection,
        answers: Mapping[str, Any],
    ) -> List[QuestionMetadata]:
        triggered: List[QuestionMetadata] = []

        def walk(questions: Sequence[QuestionMetadata], parent_visible: bool) -> None:
            for question in questions:
                visible = is_question_visible(question, answers, parent_visible)
                if visible and question.target_group and question.matches_eligibility(answers.get(question.id)):
                    triggered.append(question)
                walk(question.follow_up_questions, visible)

        walk(section.questions, True)
        return triggered

    def _select_primary(self, codes: Sequence[str]) -> Tuple[Optional[str], Decimal]:
        primary: Optional[str] = None
        highest = Decimal("0")
        for code in codes:
            definition = self.target_groups.get(code)
            if definition is None:
                continue
            # Strictly greater keeps the earliest code on ties
            if primary is None or definition.max_credit > highest:
                primary = code
                highest = definition.max_credit
        return primary, highest
