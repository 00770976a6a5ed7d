from typing import Dict, List

from services.calendar_analytics.models import CalendarEvent


def dedupe_recurring_events(events: List[CalendarEvent]) -> List[CalendarEvent]:
    """
    Collapse recurring-series occurrences to one event per series.

    Events without a ``seriesMasterId`` are kept in their original order.
    For each series the last occurrence seen wins; series follow the
    non-recurring events in the order their id was first seen.
    """
    single: List[CalendarEvent] = []
    by_series: Dict[str, CalendarEvent] = {}

    for event in events:
        if event.seriesMasterId:
            by_series[event.seriesMasterId] = event
        else:
            single.append(event)

    return single + list(by_series.values())
