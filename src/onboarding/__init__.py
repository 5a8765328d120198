"""Questionnaire Screening Module.

This module decides which questionnaire sections apply to a respondent and
which hiring credit target groups their answers qualify for, including:
- Display conditions over earlier answers (AND/OR trees)
- Section gating and per-respondent section state
- Weighted progress
- Publish-time questionnaire validation
- Target group classification
"""

from onboarding.conditions import (
    CompositeCondition,
    ConditionOperator,
    DisplayCondition,
    LogicOperator,
    SimpleCondition,
    evaluate_condition,
    is_question_visible,
    parse_condition,
)
from onboarding.questionnaire_models import (
    GatingConfig,
    QuestionMetadata,
    Questionnaire,
    QuestionnaireSection,
    QuestionType,
    ResponseData,
    SectionState,
    SectionStatus,
)
from onboarding.section_gating import ResponseTracker, evaluate_section, missing_required_questions
from onboarding.progress import calculate_progress, progress_breakdown
from onboarding.publish_validation import (
    QuestionnairePublishError,
    QuestionnaireValidator,
    ValidationIssue,
)
from onboarding.target_group_classifier import (
    ClassificationDiagnostic,
    ClassificationResult,
    TargetGroupClassifier,
)

__all__ = [
    "CompositeCondition",
    "ConditionOperator",
    "DisplayCondition",
    "LogicOperator",
    "SimpleCondition",
    "evaluate_condition",
    "is_question_visible",
    "parse_condition",
    "GatingConfig",
    "QuestionMetadata",
    "Questionnaire",
    "QuestionnaireSection",
    "QuestionType",
    "ResponseData",
    "SectionState",
    "SectionStatus",
    "ResponseTracker",
    "evaluate_section",
    "missing_required_questions",
    "calculate_progress",
    "progress_breakdown",
    "QuestionnairePublishError",
    "QuestionnaireValidator",
    "ValidationIssue",
    "ClassificationDiagnostic",
    "ClassificationResult",
    "TargetGroupClassifier",
]
