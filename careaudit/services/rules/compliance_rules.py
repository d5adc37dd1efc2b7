"""
CareAudit - Compliance Run Rules

Pure checks and derivations for compliance runs:
- response value validation per item response type
- critical-item completeness
- traffic-light outcome
- corrective action derivation on submission

Items and responses are duck-typed: ORM rows or any object with the same
attributes.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence

from careaudit.models.compliance import ActionSeverity, ResponseType, TrafficLight
from careaudit.utils.error_handling import InvalidResponseValueException, ValidationException


YES = "YES"
NO = "NO"
NA = "NA"
YES_NO_NA_VALUES = (YES, NO, NA)

DEFAULT_INCIDENT_KEYWORDS = ("incident", "concern", "restrictive practice")


@dataclass
class ActionDraft:
    """A corrective action to be created for a failing item."""
    template_item_id: uuid.UUID
    title: str
    description: str
    severity: ActionSeverity


@dataclass
class RunEvaluation:
    """Outcome of evaluating a run for submission."""
    overall_status: TrafficLight
    actions: List[ActionDraft] = field(default_factory=list)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def validate_response_value(
    response_type: ResponseType,
    value: Optional[str],
    attachment_path: Optional[str] = None,
) -> Optional[str]:
    """
    Validate and normalize a response value for an item's response type.

    Returns:
        The value to store (YES/NO/NA upper-cased, others stripped)

    Raises:
        InvalidResponseValueException: value does not fit the type
    """
    response_type = ResponseType(response_type)
    cleaned = None if value is None else str(value).strip()

    if response_type == ResponseType.YES_NO_NA:
        normalized = (cleaned or "").upper()
        if normalized not in YES_NO_NA_VALUES:
            raise InvalidResponseValueException(
                response_type.value, value,
                message="Response must be one of YES, NO or NA",
            )
        return normalized

    if response_type == ResponseType.NUMBER:
        if _is_blank(cleaned):
            raise InvalidResponseValueException(
                response_type.value, value, message="A numeric response is required",
            )
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            raise InvalidResponseValueException(
                response_type.value, value, message="Response must be a number",
            )
        if not number.is_finite():
            raise InvalidResponseValueException(
                response_type.value, value, message="Response must be a number",
            )
        return cleaned

    if response_type == ResponseType.PHOTO_REQUIRED:
        if _is_blank(attachment_path):
            raise ValidationException(
                "A photo attachment is required for this item",
                field="attachment_path",
            )
        return cleaned or None

    return cleaned or None


def has_answer(response: Any) -> bool:
    """A response counts as answered when it has a value or an attachment."""
    if response is None:
        return False
    return not _is_blank(response.response_value) or not _is_blank(getattr(response, "attachment_path", None))


def find_unanswered_critical_items(
    items: Sequence[Any],
    responses_by_item: Mapping[uuid.UUID, Any],
) -> List[Any]:
    """Critical items with no non-empty response."""
    return [
        item for item in items
        if item.is_critical and not has_answer(responses_by_item.get(item.id))
    ]


def compute_overall_status(
    items: Sequence[Any],
    responses_by_item: Mapping[uuid.UUID, Any],
) -> TrafficLight:
    """RED on any critical NO, AMBER on any other NO, else GREEN."""
    critical_no = False
    other_no = False
    for item in items:
        response = responses_by_item.get(item.id)
        if response is None or response.response_value != NO:
            continue
        if item.is_critical:
            critical_no = True
        else:
            other_no = True

    if critical_no:
        return TrafficLight.RED
    if other_no:
        return TrafficLight.AMBER
    return TrafficLight.GREEN


def severity_for_item(item: Any) -> ActionSeverity:
    return ActionSeverity.HIGH if item.is_critical else ActionSeverity.MEDIUM


def derive_actions(
    items: Sequence[Any],
    responses_by_item: Mapping[uuid.UUID, Any],
    incident_keywords: Sequence[str] = DEFAULT_INCIDENT_KEYWORDS,
) -> List[ActionDraft]:
    """
    Corrective actions for a submitted run.

    One action per NO answer. Items whose title mentions an incident
    keyword, answered YES, with notes required but missing, get a
    "missing details" action instead.
    """
    drafts: List[ActionDraft] = []
    keywords = [k.lower() for k in incident_keywords]

    for item in items:
        response = responses_by_item.get(item.id)
        if response is None:
            continue

        if response.response_value == NO:
            drafts.append(ActionDraft(
                template_item_id=item.id,
                title=item.title,
                description=(
                    response.notes if not _is_blank(response.notes)
                    else f"Non-compliant response for: {item.title}"
                ),
                severity=severity_for_item(item),
            ))
            continue

        title_lower = item.title.lower()
        if (
            response.response_value == YES
            and item.notes_required_on_fail
            and _is_blank(response.notes)
            and any(keyword in title_lower for keyword in keywords)
        ):
            drafts.append(ActionDraft(
                template_item_id=item.id,
                title=f"{item.title} - Missing Details",
                description=f"Incident/concern flagged but no notes provided for: {item.title}",
                severity=severity_for_item(item),
            ))

    return drafts


def evaluate_run_submission(
    items: Sequence[Any],
    responses_by_item: Mapping[uuid.UUID, Any],
    incident_keywords: Sequence[str] = DEFAULT_INCIDENT_KEYWORDS,
) -> RunEvaluation:
    """
    Evaluate a run for submission.

    Completeness of critical items is checked before anything is derived.

    Raises:
        ValidationException: a critical item has no answer
    """
    missing = find_unanswered_critical_items(items, responses_by_item)
    if missing:
        raise ValidationException(
            f"{len(missing)} critical item(s) must be answered before submission",
            field="responses",
            details={
                "missing_critical_items": [
                    {"id": str(item.id), "title": item.title} for item in missing
                ],
            },
        )

    return RunEvaluation(
        overall_status=compute_overall_status(items, responses_by_item),
        actions=derive_actions(items, responses_by_item, incident_keywords),
    )


def index_responses(responses: Sequence[Any]) -> Dict[uuid.UUID, Any]:
    return {response.template_item_id: response for response in responses}
