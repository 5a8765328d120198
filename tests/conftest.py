"""Pytest configuration and fixtures for test suite."""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_wotc_environment(monkeypatch):
    """Keep WOTC_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("WOTC_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed timestamp."""
    return lambda: FIXED_NOW


@pytest.fixture
def settings():
    """Default engine settings, ignoring any .env file."""
    from config.settings import EngineSettings
    return EngineSettings(_env_file=None)


@pytest.fixture
def target_table():
    """
    Small target group table used across tests.

    V uses the 5600 / 14000 veteran figures; IV-B carries a second-year cap.
    """
    from calculator.target_groups import TargetGroupTable
    return TargetGroupTable.from_mapping({
        "IV-A": {
            "name": "TANF Recipient (Long-term)",
            "max_credit": 9000,
            "qualified_wage_cap": 10000,
            "second_year_wage_cap": 10000,
            "second_year_rate": 0.50,
        },
        "IV-B": {
            "name": "TANF Recipient (Short-term)",
            "max_credit": 2400,
            "qualified_wage_cap": 6000,
            "second_year_wage_cap": 10000,
            "aliases": ["tanf"],
        },
        "V": {
            "name": "Veteran",
            "max_credit": 5600,
            "qualified_wage_cap": 14000,
            "aliases": ["veteran", "veterans"],
        },
        "IX": {
            "name": "SNAP Recipient",
            "max_credit": 2400,
            "qualified_wage_cap": 6000,
            "aliases": ["snap"],
        },
        "XI": {
            "name": "Summer Youth Employee",
            "max_credit": 1200,
            "qualified_wage_cap": 3000,
        },
    })


@pytest.fixture
def calculator(target_table, settings, fixed_clock):
    from calculator.wotc_calculator import WOTCCreditCalculator
    return WOTCCreditCalculator(target_table, settings, clock=fixed_clock)


def _questionnaire_data():
    return {
        "name": "WOTC Screening",
        "version": "3",
        "sections": [
            {
                "id": "veteran",
                "name": "Veteran Status",
                "targetGroups": ["V"],
                "order": 1,
                "weight": 2,
                "gatingConfig": {
                    "questionId": "is_veteran",
                    "questionText": "Are you a veteran?",
                    "applicableAnswers": ["Yes"],
                    "notApplicableAnswers": ["No"],
                    "skipMessage": "No problem! Moving on.",
                    "skipReasonKey": "not_veteran",
                },
                "questions": [
                    {
                        "id": "is_veteran",
                        "type": "radio",
                        "question": "Are you a veteran?",
                        "options": ["Yes", "No"],
                        "targetGroup": "V",
                        "eligibilityTrigger": "Yes",
                    },
                    {
                        "id": "discharge_date",
                        "type": "date",
                        "question": "When were you discharged?",
                        "displayCondition": {
                            "sourceQuestionId": "is_veteran",
                            "operator": "equals",
                            "value": "Yes",
                        },
                    },
                    {
                        "id": "disability_rating",
                        "type": "number",
                        "question": "What is your disability rating?",
                        "required": False,
                        "displayCondition": {
                            "sourceQuestionId": "is_veteran",
                            "operator": "equals",
                            "value": "Yes",
                        },
                        "followUpQuestions": [
                            {
                                "id": "disability_documents",
                                "type": "file",
                                "question": "Upload your VA rating letter",
                                "displayCondition": {
                                    "sourceQuestionId": "disability_rating",
                                    "operator": "greaterThan",
                                    "value": 0,
                                },
                            },
                        ],
                    },
                ],
            },
            {
                "id": "snap",
                "name": "Food Assistance",
                "targetGroups": ["IX", "IV-B"],
                "order": 2,
                "gatingConfig": {
                    "questionId": "receives_snap",
                    "applicableAnswers": ["Yes"],
                    "notApplicableAnswers": ["No"],
                    "skipReasonKey": "no_snap",
                },
                "questions": [
                    {
                        "id": "receives_snap",
                        "type": "radio",
                        "question": "Does your household receive SNAP benefits?",
                        "options": ["Yes", "No"],
                        "targetGroup": "IX",
                        "eligibilityTrigger": "Yes",
                    },
                    {
                        "id": "benefits",
                        "type": "checkbox",
                        "question": "Which benefits does your household receive?",
                        "options": ["SNAP", "TANF", "None"],
                        "targetGroup": "IV-B",
                        "eligibleValues": ["TANF"],
                        "displayCondition": {
                            "sourceQuestionId": "receives_snap",
                            "operator": "equals",
                            "value": "Yes",
                        },
                    },
                    {
                        "id": "veteran_household_size",
                        "type": "number",
                        "question": "How many people in your veteran household?",
                        "displayCondition": {
                            "logic": "AND",
                            "conditions": [
                                {"sourceQuestionId": "is_veteran", "operator": "equals", "value": "Yes"},
                                {"sourceQuestionId": "receives_snap", "operator": "equals", "value": "Yes"},
                            ],
                        },
                    },
                ],
            },
        ],
    }


@pytest.fixture
def questionnaire_data():
    """Questionnaire in its stored camelCase form."""
    return _questionnaire_data()


@pytest.fixture
def questionnaire(questionnaire_data):
    from onboarding.questionnaire_models import Questionnaire
    return Questionnaire.model_validate(questionnaire_data)


@pytest.fixture
def veteran_section(questionnaire):
    return questionnaire.section("veteran")


@pytest.fixture
def snap_section(questionnaire):
    return questionnaire.section("snap")


@pytest.fixture
def service(target_table, settings):
    from calculator.program_formulas import ProgramFormula
    from services.eligibility_service import EligibilityService
    programs = {
        "ca_new_employment": ProgramFormula.from_dict("ca_new_employment", {
            "name": "California New Employment Credit",
            "leverage_type": "wage_percentage",
            "rate": 0.35,
            "wage_cap": 56000,
        }),
    }
    return EligibilityService(target_groups=target_table, programs=programs, settings=settings)
