"""
Command-line interface for the eligibility engine.

Usage:
    wotc-engine validate questionnaire.yaml
    wotc-engine screen questionnaire.yaml answers.yaml --hours 450 --wages 20000
    wotc-engine credit V --hours 450 --wages 20000
    wotc-engine credit ca_new_employment --hours 500 --wages 30000
    wotc-engine batch requests.yaml --workers 4

Input files may be YAML or JSON. Results are printed to stdout as JSON;
logs go to stderr.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from calculator.batch import RecalculationRequest
from config.reference_loader import ReferenceDataError
from config.settings import get_settings
from onboarding.progress import progress_breakdown
from onboarding.publish_validation import QuestionnairePublishError
from onboarding.questionnaire_models import Questionnaire
from services.eligibility_service import EligibilityService
from services.logging_config import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def load_document(path: str) -> Any:
    """Load a YAML or JSON file."""
    with open(Path(path), "r") as f:
        return yaml.safe_load(f)


def emit(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_validate(service: EligibilityService, args: argparse.Namespace) -> int:
    questionnaire = Questionnaire.model_validate(load_document(args.questionnaire))
    issues = service.validate_questionnaire(questionnaire)
    errors = [issue for issue in issues if issue.is_error]
    emit({
        "name": questionnaire.name,
        "version": questionnaire.version,
        "publishable": not errors,
        "issues": [issue.to_dict() for issue in issues],
    })
    return EXIT_FAILED if errors else EXIT_OK


def cmd_screen(service: EligibilityService, args: argparse.Namespace) -> int:
    questionnaire = Questionnaire.model_validate(load_document(args.questionnaire))
    if args.publish:
        service.publish_questionnaire(questionnaire)

    document = load_document(args.answers) or {}
    if not isinstance(document, dict):
        raise ValueError("Answers file must contain a mapping")
    answers = document["answers"] if isinstance(document.get("answers"), dict) else document
    date_of_birth = args.date_of_birth or document.get("dateOfBirth")
    hire_date = args.hire_date or document.get("hireDate")

    tracker = service.start_response(questionnaire)
    tracker.record_answers(answers)
    response = tracker.response

    result = service.classify(
        questionnaire.sections,
        response.answers,
        section_states=tracker.states,
        date_of_birth=date_of_birth,
        hire_date=hire_date,
    )

    output: Dict[str, Any] = {
        "response": response.to_dict(),
        "sections": progress_breakdown(questionnaire.sections, tracker.states),
        "classification": result.to_dict(),
    }
    if args.hours is not None and args.wages is not None:
        calculations = service.calculate_for_classification(
            result,
            args.hours,
            args.wages,
            second_year_hours=args.second_year_hours,
            second_year_wages=args.second_year_wages,
            screening_id=args.screening_id,
        )
        output["calculations"] = [calc.to_dict() for calc in calculations]
    emit(output)
    return EXIT_OK


def cmd_credit(service: EligibilityService, args: argparse.Namespace) -> int:
    calculation = service.calculate(
        args.target,
        args.hours,
        args.wages,
        second_year_hours=args.second_year_hours,
        second_year_wages=args.second_year_wages,
        expenditure=args.expenditure,
        screening_id=args.screening_id,
    )
    emit(calculation.to_dict())
    return EXIT_OK


def _batch_requests(service: EligibilityService, document: Any) -> List[RecalculationRequest]:
    rows = document.get("requests") if isinstance(document, dict) else document
    if not isinstance(rows, list):
        raise ValueError("Batch file must contain a list of requests")

    requests = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValueError(f"Request {index} must be a mapping")
        target = row.get("target") or row.get("targetGroup") or row.get("programId")
        if isinstance(target, str) and target not in service.target_groups and target in service.programs:
            target = service.programs[target]
        requests.append(RecalculationRequest(
            key=str(row.get("key", index)),
            target=target,
            hours_worked=row.get("hoursWorked", 0),
            wages_earned=row.get("wagesEarned", 0),
            second_year_hours=row.get("secondYearHours"),
            second_year_wages=row.get("secondYearWages"),
            expenditure=row.get("expenditure"),
            screening_id=row.get("screeningId"),
        ))
    return requests


def cmd_batch(service: EligibilityService, args: argparse.Namespace) -> int:
    requests = _batch_requests(service, load_document(args.requests))
    result = service.recalculate_batch(requests, max_workers=args.workers)
    emit(result.to_dict())
    return EXIT_FAILED if result.failed else EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wotc-engine",
        description="Screen respondents for hiring tax credits and calculate credit amounts",
    )
    parser.add_argument(
        "--log-level", default=None,
        help="Log level (defaults to WOTC_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--json-logs", action="store_true",
        help="Emit logs as JSON",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate a questionnaire before publishing")
    validate.add_argument("questionnaire", help="Questionnaire YAML/JSON file")
    validate.set_defaults(handler=cmd_validate)

    def add_pay_arguments(sub: argparse.ArgumentParser, required: bool) -> None:
        sub.add_argument("--hours", type=float, required=required, help="Hours worked")
        sub.add_argument("--wages", type=float, required=required, help="Wages earned")
        sub.add_argument("--second-year-hours", type=float, help="Second-year hours (multi-year groups)")
        sub.add_argument("--second-year-wages", type=float, help="Second-year wages (multi-year groups)")
        sub.add_argument("--screening-id", help="Screening id to attach to calculations")

    screen = subparsers.add_parser("screen", help="Gate, classify and optionally price one respondent")
    screen.add_argument("questionnaire", help="Questionnaire YAML/JSON file")
    screen.add_argument("answers", help="Answers YAML/JSON file (question id -> answer)")
    screen.add_argument("--date-of-birth", help="Respondent date of birth (YYYY-MM-DD)")
    screen.add_argument("--hire-date", help="Hire date (YYYY-MM-DD)")
    screen.add_argument("--publish", action="store_true", help="Reject questionnaires with validation errors")
    add_pay_arguments(screen, required=False)
    screen.set_defaults(handler=cmd_screen)

    credit = subparsers.add_parser("credit", help="Calculate one credit")
    credit.add_argument("target", help="Target group code (e.g. V, IV-A) or program id")
    credit.add_argument("--expenditure", type=float, help="Qualified expenditure (expenditure-based programs)")
    add_pay_arguments(credit, required=True)
    credit.set_defaults(handler=cmd_credit)

    batch = subparsers.add_parser("batch", help="Recalculate credits for many employees")
    batch.add_argument("requests", help="YAML/JSON list of recalculation requests")
    batch.add_argument("--workers", type=int, default=None, help="Worker threads")
    batch.set_defaults(handler=cmd_batch)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(level=(args.log_level or settings.log_level).upper(), json_output=args.json_logs)

    try:
        service = EligibilityService(settings=settings)
        return args.handler(service, args)
    except QuestionnairePublishError as e:
        emit({"publishable": False, "issues": [issue.to_dict() for issue in e.issues]})
        return EXIT_FAILED
    except (OSError, ReferenceDataError, KeyError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
