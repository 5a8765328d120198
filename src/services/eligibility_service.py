"""
Eligibility Service - Application service for screening and credit calculation.

Exposes the engine's call boundaries to collaborators (HTTP layer, payroll
import, UI), which own persistence:
- evaluate_section: after each answer submission; caller stores the state
- classify: once all reachable sections are terminal
- calculate: at screening completion and whenever new payroll hours arrive;
  caller upserts by (screening_id, target_group)

Reference tables are loaded once and injected into every component.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Union

from calculator.batch import BatchResult, RecalculationRequest, recalculate_credits
from calculator.credit_records import AnyCreditCalculation, CreditCalculation
from calculator.decimal_math import Numeric
from calculator.program_formulas import ProgramCreditCalculator, ProgramFormula
from calculator.target_groups import TargetGroupTable, UnknownTargetGroupError
from calculator.wotc_calculator import WOTCCreditCalculator
from config.reference_loader import get_reference_loader
from config.settings import EngineSettings, get_settings
from onboarding.publish_validation import QuestionnaireValidator, ValidationIssue
from onboarding.questionnaire_models import (
    Questionnaire,
    QuestionnaireSection,
    ResponseData,
    SectionState,
)
from onboarding.section_gating import ResponseTracker, evaluate_section
from onboarding.target_group_classifier import (
    ClassificationResult,
    DateInput,
    SectionStates,
    TargetGroupClassifier,
)
from services.logging_config import get_logger, screening_context

logger = get_logger(__name__)


class EligibilityService:
    """
    Facade over gating, classification and credit calculation.

    Usage:
        service = EligibilityService()
        tracker = service.start_response(questionnaire)
        tracker.record_answer("veteran_gate", "Yes")
        result = service.classify(questionnaire.sections, tracker.response.answers,
                                  section_states=tracker.states)
        calculations = service.calculate_for_classification(result, 450, 20000)
    """

    def __init__(
        self,
        target_groups: Optional[TargetGroupTable] = None,
        programs: Optional[Mapping[str, ProgramFormula]] = None,
        settings: Optional[EngineSettings] = None,
    ):
        """
        Initialize the service.

        Args:
            target_groups: Target group table; defaults to the reference data
            programs: Program formulas by id; defaults to the reference data
            settings: Engine settings; defaults to get_settings()
        """
        self.settings = settings or get_settings()
        if target_groups is None:
            target_groups = get_reference_loader().target_groups(self.settings.reference_year)
        if programs is None:
            programs = get_reference_loader().programs(self.settings.reference_year)

        self.target_groups = target_groups
        self.programs = programs
        self.calculator = WOTCCreditCalculator(target_groups, self.settings)
        self.program_calculator = ProgramCreditCalculator(self.settings)
        self.classifier = TargetGroupClassifier(target_groups)
        self.validator = QuestionnaireValidator(target_groups)

    # Questionnaire authoring

    def validate_questionnaire(self, questionnaire: Questionnaire) -> List[ValidationIssue]:
        """All publish validation issues, errors first."""
        return self.validator.validate(questionnaire)

    def publish_questionnaire(self, questionnaire: Questionnaire) -> List[ValidationIssue]:
        """
        Check a questionnaire can be published.

        Returns:
            Warnings that do not block publishing

        Raises:
            QuestionnairePublishError: the questionnaire has errors
        """
        return self.validator.ensure_publishable(questionnaire)

    # Answer flow

    def start_response(
        self,
        questionnaire: Union[Questionnaire, Sequence[QuestionnaireSection]],
        response: Optional[ResponseData] = None,
    ) -> ResponseTracker:
        """Create a tracker for a new or stored response."""
        sections = questionnaire.sections if isinstance(questionnaire, Questionnaire) else questionnaire
        return ResponseTracker(sections, response=response)

    def evaluate_section(
        self,
        section: QuestionnaireSection,
        answers: Mapping[str, Any],
        previous: Optional[SectionState] = None,
        now: Optional[datetime] = None,
    ) -> SectionState:
        return evaluate_section(section, answers, previous=previous, now=now)

    def classify(
        self,
        sections: Sequence[QuestionnaireSection],
        answers: Mapping[str, Any],
        section_states: SectionStates = None,
        date_of_birth: DateInput = None,
        hire_date: DateInput = None,
    ) -> ClassificationResult:
        return self.classifier.classify(
            sections,
            answers,
            section_states=section_states,
            date_of_birth=date_of_birth,
            hire_date=hire_date,
        )

    # Credits

    def calculate(
        self,
        target: Union[str, ProgramFormula],
        hours_worked: Numeric,
        wages_earned: Numeric,
        second_year_hours: Optional[Numeric] = None,
        second_year_wages: Optional[Numeric] = None,
        expenditure: Optional[Numeric] = None,
        existing: Optional[AnyCreditCalculation] = None,
        screening_id: Optional[str] = None,
    ) -> AnyCreditCalculation:
        """
        Calculate a credit for a target group code, program id or program formula.

        Target group codes take precedence over program ids with the same name.

        Raises:
            UnknownTargetGroupError: target is neither a code nor a program id
            CreditRecalculationError: existing record is claimed or denied
        """
        if isinstance(target, str) and target not in self.target_groups and target in self.programs:
            target = self.programs[target]

        if isinstance(target, ProgramFormula):
            return self.program_calculator.calculate(
                target,
                hours_worked,
                wages_earned,
                expenditure=expenditure,
                existing=existing,
                screening_id=screening_id,
            )
        return self.calculator.calculate(
            target,
            hours_worked,
            wages_earned,
            second_year_hours=second_year_hours,
            second_year_wages=second_year_wages,
            existing=existing,
            screening_id=screening_id,
        )

    def calculate_for_classification(
        self,
        result: ClassificationResult,
        hours_worked: Numeric,
        wages_earned: Numeric,
        second_year_hours: Optional[Numeric] = None,
        second_year_wages: Optional[Numeric] = None,
        screening_id: Optional[str] = None,
    ) -> List[CreditCalculation]:
        """
        One calculation per qualifying target group.

        Codes reported as diagnostics (not in the table) are skipped.
        """
        with screening_context(screening_id):
            calculations = []
            for code in result.target_groups:
                try:
                    definition = self.target_groups.require(code)
                except UnknownTargetGroupError:
                    logger.warning(f"Skipping credit for unknown target group {code!r}")
                    continue
                calculations.append(self.calculator.calculate(
                    definition.code,
                    hours_worked,
                    wages_earned,
                    second_year_hours=second_year_hours if definition.is_multi_year else None,
                    second_year_wages=second_year_wages if definition.is_multi_year else None,
                    screening_id=screening_id,
                ))
            return calculations

    def recalculate_batch(
        self,
        requests: Sequence[RecalculationRequest],
        max_workers: Optional[int] = None,
    ) -> BatchResult:
        """Recalculate many employees' credits; failures are reported per item."""
        return recalculate_credits(
            requests,
            self.calculator,
            max_workers=max_workers,
            program_calculator=self.program_calculator,
        )


# Singleton instance
_eligibility_service: Optional[EligibilityService] = None


def get_eligibility_service() -> EligibilityService:
    """
    Get the eligibility service singleton, built from the reference data.

    Returns:
        EligibilityService: The global service instance.
    """
    global _eligibility_service
    if _eligibility_service is None:
        _eligibility_service = EligibilityService()
    return _eligibility_service
