"""
Internal vs. external meeting classification.

Classification is an ordered list of rules. Each rule either returns a
verdict or ``None`` to defer to the next one; the first verdict wins. The
final rule always answers, so every event gets a type.
"""

from typing import Callable, List, Optional, Sequence, Tuple

from services.calendar_analytics.models import CalendarEvent, MeetingType

ClassificationRule = Callable[[CalendarEvent], Optional[MeetingType]]

# Checked in order against the lower-cased category tags.
CATEGORY_RULES: Sequence[Tuple[Tuple[str, ...], MeetingType]] = (
    (("external",), MeetingType.EXTERNAL),
    (("internal", "online"), MeetingType.INTERNAL),
    (("in-person",), MeetingType.EXTERNAL),
)


def email_domain(address: Optional[str]) -> Optional[str]:
    """Return the part after the first '@', or None when there is none."""
    if not address or "@" not in address:
        return None
    return address.split("@", 1)[1]


def classify_by_categories(event: CalendarEvent) -> Optional[MeetingType]:
    if not event.categories:
        return None
    tags = {category.lower() for category in event.categories}
    for names, meeting_type in CATEGORY_RULES:
        if any(name in tags for name in names):
            return meeting_type
    return None


def classify_by_domains(event: CalendarEvent) -> Optional[MeetingType]:
    organizer = event.organizer_address
    attendees = event.attendee_addresses
    if not organizer or not attendees:
        return None

    organizer_domain = email_domain(organizer)
    for address in attendees:
        domain = email_domain(address)
        if domain is None or domain != organizer_domain:
            return MeetingType.EXTERNAL
    return MeetingType.INTERNAL


def classify_default(event: CalendarEvent) -> Optional[MeetingType]:
    return MeetingType.INTERNAL


CLASSIFICATION_RULES: List[ClassificationRule] = [
    classify_by_categories,
    classify_by_domains,
    classify_default,
]


def classify(event: CalendarEvent) -> MeetingType:
    """Classify an event as internal or external using CLASSIFICATION_RULES."""
    for rule in CLASSIFICATION_RULES:
        verdict = rule(event)
        if verdict is not None:
            return verdict
    # classify_default always answers
    raise AssertionError("no classification rule matched")
