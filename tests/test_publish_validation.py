"""
Tests for publish-time questionnaire validation.

Configuration errors must be reported before a questionnaire is published:
unknown target groups, gating questions outside their section, and display
conditions that point forward or form a cycle.
"""

import copy
import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from onboarding.publish_validation import (
    IssueSeverity,
    QuestionnairePublishError,
    QuestionnaireValidator,
)
from onboarding.questionnaire_models import Questionnaire


@pytest.fixture
def validator(target_table):
    return QuestionnaireValidator(target_table)


def codes(issues):
    return [issue.code for issue in issues]


class TestValidQuestionnaire:
    """The shared fixture questionnaire is publishable."""

    def test_no_issues(self, validator, questionnaire):
        """Test the fixture questionnaire has no issues."""
        assert validator.validate(questionnaire) == []

    def test_ensure_publishable_returns_warnings(self, validator, questionnaire):
        """Test a clean questionnaire publishes with no warnings."""
        assert validator.ensure_publishable(questionnaire) == []

    def test_aliases_are_accepted(self, validator, questionnaire_data):
        """Test target groups written as aliases validate."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["targetGroups"] = ["veteran"]
        assert validator.validate(Questionnaire.model_validate(data)) == []


class TestErrors:
    """Tests for blocking errors."""

    def test_unknown_target_group(self, validator, questionnaire_data):
        """Test unknown section and question target groups are errors."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["targetGroups"] = ["V", "XX"]
        data["sections"][0]["questions"][0]["targetGroup"] = "unicorn"
        issues = validator.validate(Questionnaire.model_validate(data))

        unknown = [i for i in issues if i.code == "unknown_target_group"]
        assert len(unknown) == 2
        assert all(i.severity == IssueSeverity.ERROR for i in unknown)
        assert unknown[1].question_id == "is_veteran"

    def test_gating_question_missing(self, validator, questionnaire_data):
        """Test the gating question must be a top-level question of the section."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["gatingConfig"]["questionId"] = "disability_documents"
        issues = validator.validate(Questionnaire.model_validate(data))
        assert "gating_question_missing" in codes(issues)

    def test_overlapping_gating_answers(self, validator, questionnaire_data):
        """Test an answer cannot be both applicable and not applicable."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["gatingConfig"]["notApplicableAnswers"] = ["No", "Yes"]
        issues = validator.validate(Questionnaire.model_validate(data))
        assert "overlapping_gating_answers" in codes(issues)

    def test_duplicate_ids(self, validator, questionnaire_data):
        """Test duplicate section and question ids are errors."""
        data = copy.deepcopy(questionnaire_data)
        duplicate = copy.deepcopy(data["sections"][1])
        duplicate["order"] = 3
        data["sections"].append(duplicate)
        issues = validator.validate(Questionnaire.model_validate(data))
        assert "duplicate_section_id" in codes(issues)
        assert "duplicate_question_id" in codes(issues)

    def test_unknown_condition_reference(self, validator, questionnaire_data):
        """Test conditions must reference existing questions."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["questions"][1]["displayCondition"]["sourceQuestionId"] = "ghost"
        issues = validator.validate(Questionnaire.model_validate(data))
        assert "unknown_condition_reference" in codes(issues)

    def test_forward_condition_reference(self, validator, questionnaire_data):
        """Test conditions cannot depend on later questions."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["questions"][1]["displayCondition"] = {
            "sourceQuestionId": "receives_snap",
            "operator": "equals",
            "value": "Yes",
        }
        issues = validator.validate(Questionnaire.model_validate(data))
        forward = [i for i in issues if i.code == "forward_condition_reference"]
        assert len(forward) == 1
        assert forward[0].question_id == "discharge_date"

    def test_cyclic_condition_reference(self, validator, questionnaire_data):
        """Test mutually dependent conditions are reported as a cycle."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["questions"][0]["displayCondition"] = {
            "sourceQuestionId": "discharge_date",
            "operator": "exists",
        }
        issues = validator.validate(Questionnaire.model_validate(data))
        assert "cyclic_condition_reference" in codes(issues)
        cycle = next(i for i in issues if i.code == "cyclic_condition_reference")
        assert "is_veteran" in cycle.message
        assert "discharge_date" in cycle.message

    def test_errors_sorted_before_warnings(self, validator, questionnaire_data):
        """Test errors are listed first."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][1]["order"] = 1
        data["sections"][1]["targetGroups"] = ["XX"]
        issues = validator.validate(Questionnaire.model_validate(data))
        severities = [issue.severity for issue in issues]
        assert severities == sorted(severities, key=lambda s: 0 if s == IssueSeverity.ERROR else 1)
        assert severities[0] == IssueSeverity.ERROR
        assert IssueSeverity.WARNING in severities

    def test_ensure_publishable_raises(self, validator, questionnaire_data):
        """Test publishing a broken questionnaire raises with the errors."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["targetGroups"] = ["XX"]
        with pytest.raises(QuestionnairePublishError) as exc_info:
            validator.ensure_publishable(Questionnaire.model_validate(data))
        assert codes(exc_info.value.issues) == ["unknown_target_group"]
        assert "XX" in str(exc_info.value)


class TestWarnings:
    """Tests for non-blocking warnings."""

    def test_duplicate_section_order(self, validator, questionnaire_data):
        """Test sections sharing an order produce a warning."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][1]["order"] = 1
        issues = validator.validate(Questionnaire.model_validate(data))
        assert codes(issues) == ["duplicate_section_order"]
        assert issues[0].severity == IssueSeverity.WARNING

    def test_empty_applicable_answers(self, validator, questionnaire_data):
        """Test a section that can never complete is flagged."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["gatingConfig"]["applicableAnswers"] = []
        issues = validator.validate(Questionnaire.model_validate(data))
        assert codes(issues) == ["empty_applicable_answers"]

    def test_trigger_without_target_group(self, validator, questionnaire_data):
        """Test an eligibility trigger needs a target group."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["questions"][1]["eligibilityTrigger"] = "2020-01-01"
        issues = validator.validate(Questionnaire.model_validate(data))
        assert codes(issues) == ["trigger_without_target_group"]

    def test_target_group_without_trigger(self, validator, questionnaire_data):
        """Test a target group with no trigger can never qualify."""
        data = copy.deepcopy(questionnaire_data)
        del data["sections"][0]["questions"][0]["eligibilityTrigger"]
        issues = validator.validate(Questionnaire.model_validate(data))
        assert codes(issues) == ["target_group_without_trigger"]

    def test_eligible_value_not_in_options(self, validator, questionnaire_data):
        """Test eligible values are checked against the options."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][1]["questions"][1]["eligibleValues"] = ["WIC"]
        issues = validator.validate(Questionnaire.model_validate(data))
        assert codes(issues) == ["eligible_value_not_in_options"]

    def test_warnings_do_not_block_publishing(self, validator, questionnaire_data):
        """Test ensure_publishable returns warnings instead of raising."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][1]["order"] = 1
        warnings = validator.ensure_publishable(Questionnaire.model_validate(data))
        assert codes(warnings) == ["duplicate_section_order"]

    def test_issue_to_dict(self, validator, questionnaire_data):
        """Test issues serialize with camelCase keys."""
        data = copy.deepcopy(questionnaire_data)
        data["sections"][0]["gatingConfig"]["applicableAnswers"] = []
        issue = validator.validate(Questionnaire.model_validate(data))[0]
        assert issue.to_dict() == {
            "severity": "warning",
            "code": "empty_applicable_answers",
            "message": issue.message,
            "sectionId": "veteran",
            "questionId": None,
        }
