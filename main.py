"""
Calendar CLI entry point.

Loads preferences, bookings and availability for one user from the booking
service and prints the projected calendar for a day, week or month.

Usage:
    python main.py --user 7 --view week
    python main.py --user 7 --date 2025-03-10 --view month --stats
"""

import argparse
import asyncio
import logging
import sys
from datetime import date

from tourdesk.backend.client import BookingBackendClient
from tourdesk.calendar.day_convention import UI_DAY_NAMES, ui_weekday
from tourdesk.calendar.preferences_store import PreferencesStore
from tourdesk.calendar.projection import CalendarProjector, CalendarView
from tourdesk.errors import NotAuthenticatedError, TransportFailure
from tourdesk.lifecycle.manager import BookingLifecycleManager
from tourdesk.logging_context import set_user_id
from tourdesk.reporting.statistics import StatisticsCalculator
from tourdesk.schemas.calendar_schema import Granularity, Projection

logger = logging.getLogger(__name__)


def format_projection(projection: Projection) -> str:
    window = projection.render_window
    lines = [
        "=" * 60,
        f"{window.granularity.value.upper()} VIEW  "
        f"{window.start.date().isoformat()} .. {window.end.date().isoformat()}",
        "=" * 60,
    ]
    if projection.visible_range:
        start, end = projection.visible_range
        lines.append(f"Visible hours: {start:%H:%M}-{end:%H:%M}")

    if not projection.all_events:
        lines.append("  (no events)")
    for event in projection.all_events:
        day = f"{UI_DAY_NAMES[ui_weekday(event.start.date())]} {event.start:%Y-%m-%d}"
        when = f"{day} all day" if event.all_day else f"{day} {event.start:%H:%M}-{event.end:%H:%M}"
        lines.append(f"  {when:<32} [{event.kind}] {event.title}")
    lines.append("=" * 60)
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> int:
    set_user_id(str(args.user))
    anchor = date.fromisoformat(args.date) if args.date else date.today()
    view = CalendarView(anchor=anchor, granularity=Granularity(args.view))

    async with BookingBackendClient() as client:
        store = PreferencesStore(client)
        manager = BookingLifecycleManager(client, args.user)
        projector = CalendarProjector(store, client, args.user, args.user_type, lifecycle=manager)
        try:
            projection = await projector.refresh(view)
            output = format_projection(projection)
            if args.stats:
                await manager.refresh()
                calculator = StatisticsCalculator()
                stats = calculator.calculate(manager.snapshot(), today=anchor)
                output += "\n" + calculator.format_report(stats)
        except NotAuthenticatedError as e:
            logger.error("%s (set BOOKING_API_TOKEN)", e)
            return 1
        except TransportFailure as e:
            logger.error("Booking service error: %s", e.message)
            return 1
        finally:
            projector.close()

    if projector.preferences is not None and projector.preferences.is_fallback:
        logger.warning("Preferences could not be loaded; showing default working hours")
    sys.stdout.write(output + "\n")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Print a user's tour calendar from the booking service."
    )
    parser.add_argument("--user", type=int, required=True, help="User id to show the calendar for.")
    parser.add_argument(
        "--user-type",
        type=str,
        default="property_manager",
        help="User type sent with preference and availability requests.",
    )
    parser.add_argument(
        "--view",
        choices=[g.value for g in Granularity],
        default=Granularity.WEEK.value,
        help="Calendar granularity (default: week).",
    )
    parser.add_argument("--date", type=str, default=None, help="Anchor date, YYYY-MM-DD (default: today).")
    parser.add_argument("--stats", action="store_true", help="Append the booking overview report.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    args = parser.parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
