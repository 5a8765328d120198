"""Questionnaire data model.

Questionnaire structure (sections, questions, gating) is authored once and
immutable after publishing, so it is modelled with frozen pydantic models
that accept the camelCase keys of stored questionnaire JSON/YAML. Per-
respondent state (answers and section states) lives in ResponseData.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from onboarding.conditions import DisplayCondition, is_question_visible, values_equal

MODEL_CONFIG = {"frozen": True, "populate_by_name": True, "extra": "ignore"}


class QuestionType(str, Enum):
    """Types of questions."""
    TEXT = "text"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"
    FILE = "file"
    NUMBER = "number"
    SELECT = "select"


class QuestionMetadata(BaseModel):
    """A single question, with optional nested follow-ups."""
    model_config = MODEL_CONFIG

    id: str = Field(min_length=1)
    type: QuestionType = QuestionType.TEXT
    question: str = Field(default="", description="Display text")
    required: bool = True
    options: List[Any] = Field(default_factory=list)

    # Eligibility
    target_group: Optional[str] = Field(default=None, alias="targetGroup")
    eligibility_trigger: Any = Field(default=None, alias="eligibilityTrigger")
    eligible_values: List[Any] = Field(default_factory=list, alias="eligibleValues")

    # Conditional logic
    display_condition: Optional[DisplayCondition] = Field(default=None, alias="displayCondition")
    follow_up_questions: List["QuestionMetadata"] = Field(default_factory=list, alias="followUpQuestions")

    help_text: Optional[str] = Field(default=None, alias="helpText")

    @property
    def has_eligibility_rule(self) -> bool:
        return self.eligibility_trigger is not None or bool(self.eligible_values)

    def matches_eligibility(self, answer: Any) -> bool:
        """
        Whether an answer satisfies this question's eligibility rule.

        A list trigger matches any of its values. List answers (checkbox)
        match if any selected value matches.
        """
        if answer is None:
            return False
        if isinstance(answer, (list, tuple, set, frozenset)):
            return any(self.matches_eligibility(item) for item in answer)

        triggers: List[Any] = []
        if self.eligibility_trigger is not None:
            if isinstance(self.eligibility_trigger, list):
                triggers.extend(self.eligibility_trigger)
            else:
                triggers.append(self.eligibility_trigger)
        triggers.extend(self.eligible_values)
        return any(values_equal(answer, trigger) for trigger in triggers)


class GatingConfig(BaseModel):
    """The single question deciding whether a section applies."""
    model_config = MODEL_CONFIG

    question_id: str = Field(alias="questionId", min_length=1)
    question_text: Optional[str] = Field(default=None, alias="questionText")
    applicable_answers: List[Any] = Field(default_factory=list, alias="applicableAnswers")
    not_applicable_answers: List[Any] = Field(default_factory=list, alias="notApplicableAnswers")
    skip_message: Optional[str] = Field(default=None, alias="skipMessage")
    skip_reason_key: Optional[str] = Field(default=None, alias="skipReasonKey")

    def is_applicable(self, answer: Any) -> bool:
        return any(values_equal(answer, a) for a in self.applicable_answers)

    def is_not_applicable(self, answer: Any) -> bool:
        return any(values_equal(answer, a) for a in self.not_applicable_answers)


class QuestionnaireSection(BaseModel):
    """A gated group of questions screening for one or more target groups."""
    model_config = MODEL_CONFIG

    id: str = Field(min_length=1)
    name: str = ""
    target_groups: List[str] = Field(default_factory=list, alias="targetGroups")
    gating_config: GatingConfig = Field(alias="gatingConfig")
    questions: List[QuestionMetadata] = Field(default_factory=list)
    order: int = 0
    weight: float = Field(default=1.0, gt=0, description="Progress weight")

    def iter_questions(self) -> Iterator[Tuple[QuestionMetadata, Optional[QuestionMetadata]]]:
        """Yield (question, parent) for every question, follow-ups included, depth-first."""
        def walk(questions, parent):
            for question in questions:
                yield question, parent
                yield from walk(question.follow_up_questions, question)
        yield from walk(self.questions, None)

    def question_ids(self) -> List[str]:
        return [question.id for question, _ in self.iter_questions()]

    def visible_questions(self, answers: Mapping[str, Any]) -> List[QuestionMetadata]:
        """Questions currently shown, follow-ups only while their parent is shown."""
        visible: List[QuestionMetadata] = []

        def walk(questions, parent_visible):
            for question in questions:
                shown = is_question_visible(question, answers, parent_visible)
                if shown:
                    visible.append(question)
                walk(question.follow_up_questions, shown)

        walk(self.questions, True)
        return visible


class Questionnaire(BaseModel):
    """A versioned questionnaire."""
    model_config = MODEL_CONFIG

    name: str = ""
    version: str = "1"
    sections: List[QuestionnaireSection] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_string(cls, value: Any) -> str:
        return str(value)

    def ordered_sections(self) -> List[QuestionnaireSection]:
        return sort_sections(self.sections)

    def section(self, section_id: str) -> QuestionnaireSection:
        for section in self.sections:
            if section.id == section_id:
                return section
        raise KeyError(section_id)


QuestionMetadata.model_rebuild()


def sort_sections(sections: List[QuestionnaireSection]) -> List[QuestionnaireSection]:
    """Sections in ``order``; stable for equal orders."""
    return sorted(sections, key=lambda s: s.order)


class SectionStatus(str, Enum):
    """Lifecycle status of a section for one respondent."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (SectionStatus.COMPLETED, SectionStatus.SKIPPED)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class SectionState:
    """State of one section for one respondent."""
    section_id: str
    status: SectionStatus = SectionStatus.PENDING
    completed_at: Optional[datetime] = None
    skipped_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"sectionId": self.section_id, "status": self.status.value}
        if self.completed_at:
            data["completedAt"] = _iso(self.completed_at)
        if self.skipped_reason:
            data["skippedReason"] = self.skipped_reason
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SectionState":
        return cls(
            section_id=data["sectionId"],
            status=SectionStatus(data.get("status", SectionStatus.PENDING.value)),
            completed_at=_parse_datetime(data.get("completedAt")),
            skipped_reason=data.get("skippedReason"),
        )


@dataclass
class ResponseData:
    """Answers and section states for one (employee, questionnaire) pair."""
    answers: Dict[str, Any] = field(default_factory=dict)
    section_states: List[SectionState] = field(default_factory=list)
    current_section_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_completed: bool = False
    completion_percentage: float = 0.0

    def state_for(self, section_id: str) -> Optional[SectionState]:
        for state in self.section_states:
            if state.section_id == section_id:
                return state
        return None

    def states_by_section(self) -> Dict[str, SectionState]:
        return {state.section_id: state for state in self.section_states}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answers": dict(self.answers),
            "sectionStates": [state.to_dict() for state in self.section_states],
            "currentSectionId": self.current_section_id,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "isCompleted": self.is_completed,
            "completionPercentage": self.completion_percentage,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResponseData":
        return cls(
            answers=dict(data.get("answers") or {}),
            section_states=[SectionState.from_dict(s) for s in data.get("sectionStates") or []],
            current_section_id=data.get("currentSectionId"),
            started_at=_parse_datetime(data.get("startedAt")),
            completed_at=_parse_datetime(data.get("completedAt")),
            is_completed=bool(data.get("isCompleted", False)),
            completion_percentage=float(data.get("completionPercentage", 0.0)),
        )
