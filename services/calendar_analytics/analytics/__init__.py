from services.calendar_analytics.analytics.aggregator import aggregate
from services.calendar_analytics.analytics.classifier import classify
from services.calendar_analytics.analytics.dedupe import dedupe_recurring_events

__all__ = ["aggregate", "classify", "dedupe_recurring_events"]
