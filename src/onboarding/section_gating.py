"""Section gating and per-respondent section state.

Each section has one gating question. Its answer decides whether the
section is skipped (not applicable), still open, or complete once every
visible required question is answered:

    pending -> in_progress -> completed | skipped

A new answer re-evaluates only non-terminal sections, unless a display
condition in another, already terminal section depends on it. Answers may arrive
out of section order, so such an answer can reveal a required question in a
section that was already completed. That case, and editing an earlier
answer, re-evaluates every section once, in section order; conditions only
refer to earlier questions, so one forward pass reaches a stable result.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
import logging

from onboarding.conditions import has_answer, is_question_visible, referenced_question_ids, values_equal
from onboarding.progress import calculate_progress
from onboarding.questionnaire_models import (
    QuestionMetadata,
    QuestionnaireSection,
    ResponseData,
    SectionState,
    SectionStatus,
    sort_sections,
)

logger = logging.getLogger(__name__)

_MISSING = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def missing_required_questions(
    questions: Sequence[QuestionMetadata],
    answers: Mapping[str, Any],
    parent_visible: bool = True,
) -> List[str]:
    """
    Ids of visible required questions without an answer.

    Hidden questions, and the follow-ups of hidden questions, are not
    required while hidden.
    """
    missing: List[str] = []
    for question in questions:
        visible = is_question_visible(question, answers, parent_visible)
        if visible and question.required and not has_answer(answers.get(question.id)):
            missing.append(question.id)
        if question.follow_up_questions:
            missing.extend(missing_required_questions(question.follow_up_questions, answers, visible))
    return missing


def evaluate_section(
    section: QuestionnaireSection,
    answers: Mapping[str, Any],
    previous: Optional[SectionState] = None,
    now: Optional[datetime] = None,
) -> SectionState:
    """
    Derive a section's state from the current answers.

    Args:
        section: Section to evaluate
        answers: All answers recorded for the respondent
        previous: Last known state; a completed section keeps its completed_at
        now: Timestamp for a newly completed section

    Returns:
        New SectionState (never raises on incomplete or unexpected answers)
    """
    gating = section.gating_config
    gating_answer = answers.get(gating.question_id)

    touched = has_answer(gating_answer) or any(
        has_answer(answers.get(question_id)) for question_id in section.question_ids()
    )
    if not touched:
        return SectionState(section_id=section.id, status=SectionStatus.PENDING)

    if has_answer(gating_answer) and gating.is_not_applicable(gating_answer):
        return SectionState(
            section_id=section.id,
            status=SectionStatus.SKIPPED,
            skipped_reason=gating.skip_reason_key,
        )

    if has_answer(gating_answer) and gating.is_applicable(gating_answer):
        missing = missing_required_questions(section.questions, answers)
        if not missing:
            completed_at = None
            if previous is not None and previous.status == SectionStatus.COMPLETED:
                completed_at = previous.completed_at
            return SectionState(
                section_id=section.id,
                status=SectionStatus.COMPLETED,
                completed_at=completed_at or now or _utcnow(),
            )
        logger.debug(f"Section {section.id} waiting on: {', '.join(missing)}")

    return SectionState(section_id=section.id, status=SectionStatus.IN_PROGRESS)


class ResponseTracker:
    """
    Owns the ResponseData of one respondent for one questionnaire.

    Not safe to share between threads; each respondent gets its own tracker.

    Usage:
        tracker = ResponseTracker(questionnaire.sections)
        tracker.record_answer("veteran_gate", "Yes")
        tracker.response.completion_percentage
    """

    def __init__(
        self,
        sections: Sequence[QuestionnaireSection],
        response: Optional[ResponseData] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.sections = sort_sections(list(sections))
        self._clock = clock
        self.response = response or ResponseData(started_at=clock())

        states = self.response.states_by_section()
        self.response.section_states = [
            states.get(section.id) or SectionState(section_id=section.id)
            for section in self.sections
        ]
        self._finalize()

    @property
    def states(self) -> Dict[str, SectionState]:
        return self.response.states_by_section()

    @property
    def progress(self) -> float:
        return self.response.completion_percentage

    def record_answer(self, question_id: str, answer: Any) -> ResponseData:
        """
        Record one answer and re-evaluate section states.

        Args:
            question_id: Question being answered
            answer: Answer value

        Returns:
            The updated ResponseData
        """
        answers = self.response.answers
        previous = answers.get(question_id, _MISSING)
        if previous is not _MISSING and values_equal(previous, answer):
            return self.response

        answers[question_id] = answer
        is_edit = previous is not _MISSING and previous is not None
        if is_edit:
            logger.info(f"Answer to {question_id} edited; re-evaluating all sections")
            full = True
        else:
            dependents = self._terminal_sections_depending_on(question_id)
            if dependents:
                logger.info(
                    f"Answer to {question_id} affects terminal sections {', '.join(dependents)}; "
                    f"re-evaluating all sections"
                )
            full = bool(dependents)
        self.reevaluate(full=full)
        return self.response

    def record_answers(self, answers: Mapping[str, Any]) -> ResponseData:
        """Record several answers in the given order."""
        for question_id, answer in answers.items():
            self.record_answer(question_id, answer)
        return self.response

    def reevaluate(self, full: bool = False) -> ResponseData:
        """
        Re-run gating in section order.

        Args:
            full: Re-evaluate terminal sections too (after an edit or an
                  answer a terminal section depends on);
                  otherwise terminal sections are left as they are
        """
        now = self._clock()
        answers = self.response.answers
        current = self.states
        new_states: List[SectionState] = []

        for section in self.sections:
            old = current.get(section.id) or SectionState(section_id=section.id)
            if old.is_terminal and not full:
                new_states.append(old)
                continue
            state = evaluate_section(section, answers, previous=old, now=now)
            if state.status != old.status:
                logger.info(f"Section {section.id}: {old.status.value} -> {state.status.value}")
            new_states.append(state)

        self.response.section_states = new_states
        self._finalize(now)
        return self.response

    def _terminal_sections_depending_on(self, question_id: str) -> List[str]:
        """
        Ids of terminal sections with a display condition that reads ``question_id``.

        Only sections that do not contain ``question_id`` count; a follow-up
        answered inside a terminal section does not reopen it.
        """
        states = self.states
        dependents: List[str] = []
        for section in self.sections:
            if not states[section.id].is_terminal or question_id in section.question_ids():
                continue
            if any(
                question_id in referenced_question_ids(question.display_condition)
                for question, _parent in section.iter_questions()
            ):
                dependents.append(section.id)
        return dependents

    def _finalize(self, now: Optional[datetime] = None) -> None:
        states = self.states
        self.response.completion_percentage = calculate_progress(self.sections, states)
        self.response.current_section_id = next(
            (s.id for s in self.sections if not states[s.id].is_terminal),
            None,
        )
        if self.response.current_section_id is None:
            if not self.response.is_completed:
                self.response.is_completed = True
                self.response.completed_at = self.response.completed_at or now or self._clock()
                logger.info("Questionnaire completed")
        else:
            self.response.is_completed = False
            self.response.completed_at = None

    def missing_required(self, section_id: str) -> List[str]:
        """Unanswered visible required questions of one section."""
        for section in self.sections:
            if section.id == section_id:
                return missing_required_questions(section.questions, self.response.answers)
        raise KeyError(section_id)
