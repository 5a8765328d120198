"""Display condition evaluation.

A question's ``display_condition`` is either a single predicate over another
question's answer (SimpleCondition) or an AND/OR group of conditions
(CompositeCondition), nested to any depth. Evaluation never raises on bad
answer data: malformed numbers and unanswered questions evaluate to False,
since a half-finished questionnaire is a normal runtime state.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union
import logging

from pydantic import BaseModel, Field

from calculator.decimal_math import coerce_number

logger = logging.getLogger(__name__)


class ConditionOperator(str, Enum):
    """Comparison applied by a SimpleCondition."""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    INCLUDES = "includes"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    EXISTS = "exists"


class LogicOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class SimpleCondition(BaseModel):
    """Predicate over the answer to ``source_question_id``."""
    model_config = {"frozen": True, "populate_by_name": True, "extra": "forbid"}

    source_question_id: str = Field(alias="sourceQuestionId", min_length=1)
    operator: ConditionOperator
    value: Any = None


class CompositeCondition(BaseModel):
    """AND/OR group of conditions."""
    model_config = {"frozen": True, "populate_by_name": True, "extra": "forbid"}

    logic: LogicOperator
    conditions: List["DisplayCondition"] = Field(default_factory=list)


DisplayCondition = Union[SimpleCondition, CompositeCondition]

CompositeCondition.model_rebuild()


def values_equal(left: Any, right: Any) -> bool:
    """Equality that never treats True/False as 1/0."""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(
            values_equal(left[k], right[k]) for k in left
        )
    try:
        return bool(left == right)
    except TypeError:
        return False


def has_answer(value: Any) -> bool:
    """True for a non-null, non-empty answer."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) > 0
    return True


def _evaluate_simple(condition: SimpleCondition, answers: Mapping[str, Any]) -> bool:
    answer = answers.get(condition.source_question_id)
    # Unanswered dependencies keep the question hidden
    if answer is None:
        return False

    operator = condition.operator
    if operator == ConditionOperator.EQUALS:
        return values_equal(answer, condition.value)
    if operator == ConditionOperator.NOT_EQUALS:
        return not values_equal(answer, condition.value)
    if operator == ConditionOperator.INCLUDES:
        if not isinstance(answer, (list, tuple, set, frozenset)):
            return False
        return any(values_equal(item, condition.value) for item in answer)
    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left = coerce_number(answer)
        right = coerce_number(condition.value)
        if left is None or right is None:
            return False
        if operator == ConditionOperator.GREATER_THAN:
            return left > right
        return left < right
    if operator == ConditionOperator.EXISTS:
        return has_answer(answer)
    raise TypeError(f"Unsupported condition operator: {operator!r}")


def evaluate_condition(condition: DisplayCondition, answers: Mapping[str, Any]) -> bool:
    """
    Evaluate a display condition against the recorded answers.

    Args:
        condition: SimpleCondition or CompositeCondition tree
        answers: Map of question id -> answer

    Returns:
        True if the condition holds. AND over no conditions is True,
        OR over no conditions is False.
    """
    if isinstance(condition, SimpleCondition):
        return _evaluate_simple(condition, answers)
    if isinstance(condition, CompositeCondition):
        if condition.logic == LogicOperator.AND:
            return all(evaluate_condition(c, answers) for c in condition.conditions)
        return any(evaluate_condition(c, answers) for c in condition.conditions)
    raise TypeError(f"Not a display condition: {type(condition).__name__}")


def is_question_visible(question: Any, answers: Mapping[str, Any], parent_visible: bool = True) -> bool:
    """
    Whether a question is currently shown.

    A follow-up question is only visible while its parent is visible.
    Questions without a display condition are always visible.
    """
    if not parent_visible:
        return False
    condition = getattr(question, "display_condition", None)
    if condition is None:
        return True
    return evaluate_condition(condition, answers)


def parse_condition(data: Union[DisplayCondition, Dict[str, Any]]) -> DisplayCondition:
    """Parse a stored condition dict (camelCase or snake_case keys)."""
    if isinstance(data, (SimpleCondition, CompositeCondition)):
        return data
    if not isinstance(data, dict):
        raise TypeError(f"Cannot parse condition from {type(data).__name__}")
    if "logic" in data:
        return CompositeCondition.model_validate(data)
    return SimpleCondition.model_validate(data)


def referenced_question_ids(condition: Optional[DisplayCondition]) -> List[str]:
    """Question ids a condition depends on, in first-reference order."""
    if condition is None:
        return []
    if isinstance(condition, SimpleCondition):
        return [condition.source_question_id]
    seen: List[str] = []
    for child in condition.conditions:
        for question_id in referenced_question_ids(child):
            if question_id not in seen:
                seen.append(question_id)
    return seen
