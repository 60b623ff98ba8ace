from tourdesk.backend.client import BookingBackendClient, CalendarFeed

__all__ = ["BookingBackendClient", "CalendarFeed"]
