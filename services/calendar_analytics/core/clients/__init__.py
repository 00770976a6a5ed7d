from services.calendar_analytics.core.clients.graph import GraphAPIClient

__all__ = ["GraphAPIClient"]
