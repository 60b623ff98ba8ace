"""
Booking statistics and list filtering for the dashboard overview.

Counts per status, approval rate, average response time, a seven-day
trend and the most requested properties, all calculated from a list of
bookings already held by the lifecycle manager.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo
from typing import Iterable, Optional

from tourdesk.schemas.booking_schema import Booking, BookingStatus

logger = logging.getLogger(__name__)

TREND_DAYS = 7
TOP_PROPERTIES = 5


@dataclass
class PropertyCount:
    property_id: int
    address: str
    bookings: int


@dataclass
class BookingStatistics:
    """Calculated booking KPIs for one user."""

    # Volume
    total: int = 0
    pending: int = 0
    approved: int = 0
    denied: int = 0
    cancelled: int = 0
    rescheduled: int = 0

    # Responsiveness
    approval_rate: int = 0
    avg_response_minutes: int = 0

    # Trends
    daily_counts: list[tuple[date, int]] = field(default_factory=list)
    top_properties: list[PropertyCount] = field(default_factory=list)


def _matches(booking: Booking, query: str) -> bool:
    haystack = [
        booking.visitor.name,
        booking.visitor.phone,
        booking.visitor.email or "",
        booking.property_address or "",
        str(booking.booking_id),
    ]
    return any(query in value.lower() for value in haystack)


def filter_bookings(
    bookings: Iterable[Booking], status: str = "all", query: str = ""
) -> list[Booking]:
    """Filter by status ("all" for any) and a case-insensitive search term."""
    needle = query.strip().lower()
    results = []
    for booking in bookings:
        if status != "all" and booking.status.value != status:
            continue
        if needle and not _matches(booking, needle):
            continue
        results.append(booking)
    return results


def pending_bookings(bookings: Iterable[Booking]) -> list[Booking]:
    """Bookings awaiting a decision, oldest request first."""
    pending = [b for b in bookings if b.status == BookingStatus.PENDING]
    return sorted(pending, key=lambda b: (b.requested_at or b.start_at, b.booking_id))


class StatisticsCalculator:
    """Calculates BookingStatistics from a booking list."""

    def calculate(
        self,
        bookings: list[Booking],
        today: Optional[date] = None,
        tz: Optional[tzinfo] = None,
    ) -> BookingStatistics:
        stats = BookingStatistics(total=len(bookings))

        counts = Counter(b.status for b in bookings)
        stats.pending = counts[BookingStatus.PENDING]
        stats.approved = counts[BookingStatus.APPROVED]
        stats.denied = counts[BookingStatus.DENIED]
        stats.cancelled = counts[BookingStatus.CANCELLED]
        stats.rescheduled = counts[BookingStatus.RESCHEDULED]

        decided = stats.approved + stats.denied
        if decided:
            stats.approval_rate = round(stats.approved / decided * 100)

        stats.avg_response_minutes = self._average_response_minutes(bookings)
        stats.daily_counts = self._daily_counts(bookings, today or date.today(), tz)
        stats.top_properties = self._top_properties(bookings)
        return stats

    @staticmethod
    def _average_response_minutes(bookings: list[Booking]) -> int:
        minutes = [
            (b.updated_at - b.requested_at).total_seconds() / 60
            for b in bookings
            if b.status in (BookingStatus.APPROVED, BookingStatus.DENIED)
            and b.requested_at is not None
            and b.updated_at is not None
        ]
        if not minutes:
            return 0
        return round(sum(minutes) / len(minutes))

    @staticmethod
    def _daily_counts(
        bookings: list[Booking], today: date, tz: Optional[tzinfo]
    ) -> list[tuple[date, int]]:
        """Bookings per start day for the last seven days, oldest first."""
        per_day = Counter(
            (b.start_at.astimezone(tz) if tz else b.start_at).date() for b in bookings
        )
        days = [today - timedelta(days=offset) for offset in range(TREND_DAYS - 1, -1, -1)]
        return [(day, per_day[day]) for day in days]

    @staticmethod
    def _top_properties(bookings: list[Booking]) -> list[PropertyCount]:
        per_property = Counter(b.property_id for b in bookings)
        addresses = {b.property_id: b.property_address for b in bookings if b.property_address}
        return [
            PropertyCount(
                property_id=pid,
                address=addresses.get(pid, f"Property #{pid}"),
                bookings=count,
            )
            for pid, count in per_property.most_common(TOP_PROPERTIES)
        ]

    def format_report(self, stats: BookingStatistics) -> str:
        """Format statistics into a human-readable report."""
        lines = [
            "=" * 60,
            "BOOKING OVERVIEW",
            "=" * 60,
            "",
            "VOLUME",
            f"  Total:                  {stats.total}",
            f"  Pending:                {stats.pending}",
            f"  Approved:               {stats.approved}",
            f"  Denied:                 {stats.denied}",
            f"  Cancelled:              {stats.cancelled}",
            f"  Rescheduled:            {stats.rescheduled}",
            "",
            "RESPONSIVENESS",
            f"  Approval rate:          {stats.approval_rate}%",
            f"  Avg response time:      {stats.avg_response_minutes} min",
            "",
            "LAST 7 DAYS",
        ]
        lines.extend(f"  {day.isoformat()}:             {count}" for day, count in stats.daily_counts)
        lines.extend(["", "TOP PROPERTIES"])
        lines.extend(f"  {p.address}: {p.bookings}" for p in stats.top_properties)
        lines.append("=" * 60)
        return "\n".join(lines)
