"""Publish-time questionnaire validation.

Configuration mistakes (unknown target group codes, gating questions that
are not part of their section, display conditions that point forward or
in a cycle) are caught here, before a questionnaire version is published,
rather than while respondents are answering it.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple
import logging

from calculator.target_groups import TargetGroupTable
from onboarding.conditions import referenced_question_ids, values_equal
from onboarding.questionnaire_models import Questionnaire, QuestionMetadata, QuestionnaireSection

logger = logging.getLogger(__name__)


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    """A single publish validation finding."""
    severity: IssueSeverity
    code: str
    message: str
    section_id: Optional[str] = None
    question_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity == IssueSeverity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "sectionId": self.section_id,
            "questionId": self.question_id,
        }


class QuestionnairePublishError(Exception):
    """Raised when a questionnaire has validation errors and cannot be published."""

    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        summary = "; ".join(issue.message for issue in issues[:5])
        if len(issues) > 5:
            summary += f" (+{len(issues) - 5} more)"
        super().__init__(f"Questionnaire cannot be published: {summary}")


class QuestionnaireValidator:
    """
    Validates questionnaire structure against the target group table.

    Usage:
        validator = QuestionnaireValidator(table)
        issues = validator.validate(questionnaire)
        validator.ensure_publishable(questionnaire)  # raises on errors
    """

    def __init__(self, target_groups: Optional[TargetGroupTable] = None):
        if target_groups is None:
            # Import here to avoid circular imports
            from config.reference_loader import get_reference_loader
            target_groups = get_reference_loader().target_groups()
        self.target_groups = target_groups

    def validate(self, questionnaire: Questionnaire) -> List[ValidationIssue]:
        """Run every check; errors first, then warnings."""
        issues: List[ValidationIssue] = []
        sections = questionnaire.ordered_sections()

        issues.extend(self._check_section_ids(sections))
        issues.extend(self._check_question_ids(sections))
        for section in sections:
            issues.extend(self._check_gating(section))
            issues.extend(self._check_target_groups(section))
            issues.extend(self._check_eligibility_rules(section))
        issues.extend(self._check_condition_references(sections))

        return sorted(issues, key=lambda i: 0 if i.is_error else 1)

    def ensure_publishable(self, questionnaire: Questionnaire) -> List[ValidationIssue]:
        """
        Validate and raise if any error was found.

        Returns:
            Remaining warnings

        Raises:
            QuestionnairePublishError: one or more errors
        """
        issues = self.validate(questionnaire)
        errors = [issue for issue in issues if issue.is_error]
        warnings = [issue for issue in issues if not issue.is_error]
        for warning in warnings:
            logger.warning(f"Questionnaire {questionnaire.name!r}: {warning.message}")
        if errors:
            logger.warning(
                f"Questionnaire {questionnaire.name!r} v{questionnaire.version} failed validation "
                f"with {len(errors)} error(s)"
            )
            raise QuestionnairePublishError(errors)
        logger.info(
            f"Questionnaire {questionnaire.name!r} v{questionnaire.version} is publishable "
            f"({len(warnings)} warning(s))"
        )
        return warnings

    def _check_section_ids(self, sections: List[QuestionnaireSection]) -> List[ValidationIssue]:
        issues = []
        id_counts = Counter(section.id for section in sections)
        for section_id, count in id_counts.items():
            if count > 1:
                issues.append(ValidationIssue(
                    IssueSeverity.ERROR, "duplicate_section_id",
                    f"Section id {section_id!r} is used {count} times",
                    section_id=section_id,
                ))
        order_counts = Counter(section.order for section in sections)
        for order, count in order_counts.items():
            if count > 1:
                issues.append(ValidationIssue(
                    IssueSeverity.WARNING, "duplicate_section_order",
                    f"{count} sections share order {order}; they are ordered by position",
                ))
        return issues

    def _check_question_ids(self, sections: List[QuestionnaireSection]) -> List[ValidationIssue]:
        issues = []
        counts = Counter(qid for section in sections for qid in section.question_ids())
        for question_id, count in counts.items():
            if count > 1:
                issues.append(ValidationIssue(
                    IssueSeverity.ERROR, "duplicate_question_id",
                    f"Question id {question_id!r} is used {count} times",
                    question_id=question_id,
                ))
        return issues

    def _check_gating(self, section: QuestionnaireSection) -> List[ValidationIssue]:
        issues = []
        gating = section.gating_config
        if gating.question_id not in {q.id for q in section.questions}:
            issues.append(ValidationIssue(
                IssueSeverity.ERROR, "gating_question_missing",
                f"Section {section.id!r} gating question {gating.question_id!r} is not one of its questions",
                section_id=section.id,
                question_id=gating.question_id,
            ))
        overlap = [
            answer for answer in gating.applicable_answers
            if any(values_equal(answer, other) for other in gating.not_applicable_answers)
        ]
        if overlap:
            issues.append(ValidationIssue(
                IssueSeverity.ERROR, "overlapping_gating_answers",
                f"Section {section.id!r} lists {overlap!r} as both applicable and not applicable",
                section_id=section.id,
            ))
        if not gating.applicable_answers:
            issues.append(ValidationIssue(
                IssueSeverity.WARNING, "empty_applicable_answers",
                f"Section {section.id!r} can never be completed: no applicable answers",
                section_id=section.id,
            ))
        return issues

    def _check_target_groups(self, section: QuestionnaireSection) -> List[ValidationIssue]:
        issues = []
        for code in section.target_groups:
            if self.target_groups.normalize(code) is None:
                issues.append(ValidationIssue(
                    IssueSeverity.ERROR, "unknown_target_group",
                    f"Section {section.id!r} screens for unknown target group {code!r}",
                    section_id=section.id,
                ))
        for question, _ in section.iter_questions():
            if question.target_group and self.target_groups.normalize(question.target_group) is None:
                issues.append(ValidationIssue(
                    IssueSeverity.ERROR, "unknown_target_group",
                    f"Question {question.id!r} triggers unknown target group {question.target_group!r}",
                    section_id=section.id,
                    question_id=question.id,
                ))
        return issues

    def _check_eligibility_rules(self, section: QuestionnaireSection) -> List[ValidationIssue]:
        issues = []
        for question, _ in section.iter_questions():
            if question.has_eligibility_rule and not question.target_group:
                issues.append(ValidationIssue(
                    IssueSeverity.WARNING, "trigger_without_target_group",
                    f"Question {question.id!r} has an eligibility trigger but no target group",
                    section_id=section.id,
                    question_id=question.id,
                ))
            if question.target_group and not question.has_eligibility_rule:
                issues.append(ValidationIssue(
                    IssueSeverity.WARNING, "target_group_without_trigger",
                    f"Question {question.id!r} names target group {question.target_group!r} "
                    f"but has no eligibility trigger",
                    section_id=section.id,
                    question_id=question.id,
                ))
            for value in self._eligibility_values(question):
                if question.options and not any(values_equal(value, o) for o in question.options):
                    issues.append(ValidationIssue(
                        IssueSeverity.WARNING, "eligible_value_not_in_options",
                        f"Question {question.id!r} eligible value {value!r} is not one of its options",
                        section_id=section.id,
                        question_id=question.id,
                    ))
        return issues

    @staticmethod
    def _eligibility_values(question: QuestionMetadata) -> List[Any]:
        values: List[Any] = []
        trigger = question.eligibility_trigger
        if isinstance(trigger, list):
            values.extend(trigger)
        elif trigger is not None:
            values.append(trigger)
        values.extend(question.eligible_values)
        return values

    def _check_condition_references(self, sections: List[QuestionnaireSection]) -> List[ValidationIssue]:
        """Conditions may only depend on questions answered earlier."""
        issues = []
        position: Dict[str, int] = {}
        located: List[Tuple[QuestionnaireSection, QuestionMetadata]] = []
        for section in sections:
            for question, _ in section.iter_questions():
                position.setdefault(question.id, len(position))
                located.append((section, question))

        graph: Dict[str, List[str]] = {}
        for section, question in located:
            for source_id in referenced_question_ids(question.display_condition):
                if source_id not in position:
                    issues.append(ValidationIssue(
                        IssueSeverity.ERROR, "unknown_condition_reference",
                        f"Question {question.id!r} depends on unknown question {source_id!r}",
                        section_id=section.id,
                        question_id=question.id,
                    ))
                    continue
                graph.setdefault(question.id, []).append(source_id)
                if position[source_id] >= position[question.id] and source_id != question.id:
                    issues.append(ValidationIssue(
                        IssueSeverity.ERROR, "forward_condition_reference",
                        f"Question {question.id!r} depends on later question {source_id!r}",
                        section_id=section.id,
                        question_id=question.id,
                    ))

        for cycle in _find_cycles(graph):
            issues.append(ValidationIssue(
                IssueSeverity.ERROR, "cyclic_condition_reference",
                f"Display conditions form a cycle: {' -> '.join(cycle)}",
                question_id=cycle[0],
            ))
        return issues


def _find_cycles(graph: Dict[str, List[str]]) -> List[List[str]]:
    """Cycles in a dependency graph, each reported once."""
    cycles: List[List[str]] = []
    reported: Set[frozenset] = set()
    visiting: List[str] = []
    done: Set[str] = set()

    def visit(node: str) -> None:
        if node in done:
            return
        if node in visiting:
            cycle = visiting[visiting.index(node):] + [node]
            key = frozenset(cycle)
            if key not in reported:
                reported.add(key)
                cycles.append(cycle)
            return
        visiting.append(node)
        for target in graph.get(node, []):
            visit(target)
        visiting.pop()
        done.add(node)

    for node in list(graph):
        visit(node)
    return cycles
