from tourdesk.reporting.statistics import (
    BookingStatistics,
    StatisticsCalculator,
    filter_bookings,
    pending_bookings,
)

__all__ = ["BookingStatistics", "StatisticsCalculator", "filter_bookings", "pending_bookings"]
