"""Questionnaire progress from section states."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from onboarding.questionnaire_models import (
    QuestionnaireSection,
    SectionState,
    SectionStatus,
    sort_sections,
)


def calculate_progress(
    sections: Sequence[QuestionnaireSection],
    states: Mapping[str, SectionState],
) -> float:
    """
    Weighted completion percentage.

    Completed and skipped sections count towards progress; a section with
    no state counts as pending.

    Args:
        sections: Questionnaire sections
        states: Section states keyed by section id

    Returns:
        0-100, rounded to 2 places. A questionnaire without sections is 100.

    Example:
        Weights 1, 1, 2 with the first two terminal -> 50.0
    """
    total = sum(section.weight for section in sections)
    if not sections or total <= 0:
        return 100.0
    done = sum(
        section.weight
        for section in sections
        if section.id in states and states[section.id].is_terminal
    )
    return round(done / total * 100, 2)


def progress_breakdown(
    sections: Sequence[QuestionnaireSection],
    states: Mapping[str, SectionState],
) -> List[Dict[str, Any]]:
    """Per-section rows (in section order) for progress display."""
    rows = []
    for section in sort_sections(list(sections)):
        state: Optional[SectionState] = states.get(section.id)
        status = state.status if state else SectionStatus.PENDING
        rows.append({
            "sectionId": section.id,
            "name": section.name,
            "order": section.order,
            "weight": section.weight,
            "status": status.value,
            "skippedReason": state.skipped_reason if state else None,
        })
    return rows
