"""
Tests for display condition evaluation.

Conditions decide which questions are shown. Evaluation must be pure,
deterministic and tolerant of bad answers:
- Unanswered source questions evaluate to False
- Malformed numbers evaluate to False instead of raising
- AND over no conditions is True, OR over no conditions is False
"""

import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from onboarding.conditions import (
    CompositeCondition,
    ConditionOperator,
    LogicOperator,
    SimpleCondition,
    evaluate_condition,
    is_question_visible,
    parse_condition,
    referenced_question_ids,
)


def simple(source, operator, value=None):
    return SimpleCondition(source_question_id=source, operator=operator, value=value)


class TestEqualityOperators:
    """Tests for equals / notEquals."""

    def test_equals_matching_answer(self):
        """Test equals is True when the answer matches."""
        assert evaluate_condition(simple("q1", "equals", "Yes"), {"q1": "Yes"}) is True

    def test_equals_different_answer(self):
        """Test equals is False for a different answer."""
        assert evaluate_condition(simple("q1", "equals", "Yes"), {"q1": "No"}) is False

    def test_equals_does_not_coerce_booleans(self):
        """Test True is not treated as equal to 1."""
        assert evaluate_condition(simple("q1", "equals", 1), {"q1": True}) is False
        assert evaluate_condition(simple("q1", "equals", True), {"q1": True}) is True

    def test_equals_compares_lists_structurally(self):
        """Test list answers compare element by element."""
        condition = simple("q1", "equals", ["SNAP", "TANF"])
        assert evaluate_condition(condition, {"q1": ["SNAP", "TANF"]}) is True
        assert evaluate_condition(condition, {"q1": ["TANF", "SNAP"]}) is False

    def test_not_equals(self):
        """Test notEquals is the negation of equals for answered questions."""
        condition = simple("q1", "notEquals", "No")
        assert evaluate_condition(condition, {"q1": "Yes"}) is True
        assert evaluate_condition(condition, {"q1": "No"}) is False


class TestIncludesOperator:
    """Tests for includes."""

    def test_includes_member(self):
        """Test includes is True when the value is selected."""
        condition = simple("benefits", "includes", "TANF")
        assert evaluate_condition(condition, {"benefits": ["SNAP", "TANF"]}) is True

    def test_includes_non_member(self):
        """Test includes is False when the value is not selected."""
        condition = simple("benefits", "includes", "TANF")
        assert evaluate_condition(condition, {"benefits": ["SNAP"]}) is False

    def test_includes_requires_collection(self):
        """Test includes on a plain string answer is False."""
        condition = simple("benefits", "includes", "TANF")
        assert evaluate_condition(condition, {"benefits": "TANF benefits"}) is False


class TestNumericOperators:
    """Tests for greaterThan / lessThan."""

    def test_greater_than(self):
        """Test greaterThan on numeric answers."""
        condition = simple("age", "greaterThan", 17)
        assert evaluate_condition(condition, {"age": 18}) is True
        assert evaluate_condition(condition, {"age": 17}) is False

    def test_less_than(self):
        """Test lessThan on numeric answers."""
        condition = simple("age", "lessThan", 18)
        assert evaluate_condition(condition, {"age": 17}) is True
        assert evaluate_condition(condition, {"age": 18}) is False

    def test_numeric_strings_are_coerced(self):
        """Test currency formatted strings are read as numbers."""
        condition = simple("income", "lessThan", "1500")
        assert evaluate_condition(condition, {"income": "$1,250.50"}) is True

    @pytest.mark.parametrize("answer", ["abc", "", [], {"a": 1}, True, "nan"])
    def test_malformed_number_is_false(self, answer):
        """Test non-numeric answers evaluate to False and never raise."""
        assert evaluate_condition(simple("age", "greaterThan", 0), {"age": answer}) is False
        assert evaluate_condition(simple("age", "lessThan", 0), {"age": answer}) is False

    def test_malformed_condition_value_is_false(self):
        """Test a non-numeric comparison value evaluates to False."""
        assert evaluate_condition(simple("age", "greaterThan", "old"), {"age": 30}) is False


class TestExistsOperator:
    """Tests for exists."""

    def test_exists_with_answer(self):
        """Test exists is True for a real answer."""
        assert evaluate_condition(simple("q1", "exists"), {"q1": "anything"}) is True

    def test_exists_false_answer_counts(self):
        """Test a False answer is still an answer."""
        assert evaluate_condition(simple("q1", "exists"), {"q1": False}) is True

    @pytest.mark.parametrize("answer", ["", "   ", [], {}])
    def test_exists_empty_answers(self, answer):
        """Test empty strings and collections do not exist."""
        assert evaluate_condition(simple("q1", "exists"), {"q1": answer}) is False


class TestUnansweredSource:
    """Unanswered dependencies keep questions hidden."""

    @pytest.mark.parametrize("operator", [op.value for op in ConditionOperator])
    def test_missing_answer_is_false(self, operator):
        """Test every operator is False when the source is unanswered."""
        assert evaluate_condition(simple("q1", operator, "x"), {}) is False

    @pytest.mark.parametrize("operator", [op.value for op in ConditionOperator])
    def test_none_answer_is_false(self, operator):
        """Test every operator is False when the answer is None."""
        assert evaluate_condition(simple("q1", operator, "x"), {"q1": None}) is False


class TestCompositeConditions:
    """Tests for AND / OR trees."""

    def test_empty_and_is_true(self):
        """Test AND over no conditions is True."""
        assert evaluate_condition(CompositeCondition(logic=LogicOperator.AND, conditions=[]), {}) is True

    def test_empty_or_is_false(self):
        """Test OR over no conditions is False."""
        assert evaluate_condition(CompositeCondition(logic=LogicOperator.OR, conditions=[]), {}) is False

    def test_and_requires_all(self):
        """Test AND is False when any child is False."""
        condition = CompositeCondition(logic="AND", conditions=[
            simple("a", "equals", "Yes"),
            simple("b", "equals", "Yes"),
        ])
        assert evaluate_condition(condition, {"a": "Yes", "b": "Yes"}) is True
        assert evaluate_condition(condition, {"a": "Yes", "b": "No"}) is False

    def test_or_requires_any(self):
        """Test OR is True when any child is True."""
        condition = CompositeCondition(logic="OR", conditions=[
            simple("a", "equals", "Yes"),
            simple("b", "equals", "Yes"),
        ])
        assert evaluate_condition(condition, {"a": "No", "b": "Yes"}) is True
        assert evaluate_condition(condition, {"a": "No"}) is False

    def test_nested_tree(self):
        """Test arbitrarily nested trees."""
        condition = parse_condition({
            "logic": "AND",
            "conditions": [
                {"sourceQuestionId": "veteran", "operator": "equals", "value": "Yes"},
                {
                    "logic": "OR",
                    "conditions": [
                        {"sourceQuestionId": "weeks_unemployed", "operator": "greaterThan", "value": 26},
                        {"sourceQuestionId": "disabled", "operator": "equals", "value": True},
                    ],
                },
            ],
        })
        assert evaluate_condition(condition, {"veteran": "Yes", "weeks_unemployed": 30}) is True
        assert evaluate_condition(condition, {"veteran": "Yes", "disabled": True}) is True
        assert evaluate_condition(condition, {"veteran": "Yes", "weeks_unemployed": 4}) is False
        assert evaluate_condition(condition, {"veteran": "No", "disabled": True}) is False

    def test_evaluation_is_deterministic(self):
        """Test repeated evaluation gives the same result."""
        condition = CompositeCondition(logic="OR", conditions=[
            simple("a", "greaterThan", 5),
            simple("b", "includes", "x"),
        ])
        answers = {"a": "7", "b": ["y"]}
        results = {evaluate_condition(condition, answers) for _ in range(10)}
        assert results == {True}

    def test_unknown_condition_type_raises(self):
        """Test non-condition objects are rejected."""
        with pytest.raises(TypeError):
            evaluate_condition({"sourceQuestionId": "a"}, {})


class TestConditionHelpers:
    """Tests for parsing and dependency helpers."""

    def test_parse_simple_condition_camel_case(self):
        """Test stored camelCase conditions parse into SimpleCondition."""
        condition = parse_condition({"sourceQuestionId": "q1", "operator": "notEquals", "value": "No"})
        assert isinstance(condition, SimpleCondition)
        assert condition.source_question_id == "q1"
        assert condition.operator == ConditionOperator.NOT_EQUALS

    def test_parse_rejects_unknown_operator(self):
        """Test unknown operators fail validation."""
        with pytest.raises(ValueError):
            parse_condition({"sourceQuestionId": "q1", "operator": "startsWith", "value": "x"})

    def test_referenced_question_ids(self):
        """Test dependencies are listed once in first-reference order."""
        condition = parse_condition({
            "logic": "OR",
            "conditions": [
                {"sourceQuestionId": "b", "operator": "exists"},
                {"logic": "AND", "conditions": [
                    {"sourceQuestionId": "a", "operator": "exists"},
                    {"sourceQuestionId": "b", "operator": "exists"},
                ]},
            ],
        })
        assert referenced_question_ids(condition) == ["b", "a"]
        assert referenced_question_ids(None) == []

    def test_question_without_condition_is_visible(self, veteran_section):
        """Test questions without a condition are always shown."""
        gating_question = veteran_section.questions[0]
        assert is_question_visible(gating_question, {}) is True

    def test_follow_up_hidden_when_parent_hidden(self, veteran_section):
        """Test a follow-up is hidden while its parent is hidden."""
        rating = veteran_section.questions[2]
        documents = rating.follow_up_questions[0]
        answers = {"is_veteran": "No", "disability_rating": 30}
        parent_visible = is_question_visible(rating, answers)
        assert parent_visible is False
        assert is_question_visible(documents, answers, parent_visible) is False
