"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""


class TestSchemaImports:
    def test_import_booking_schema(self):
        from tourdesk.schemas.booking_schema import BookingSource, BookingStatus
        assert BookingStatus.PENDING == "pending"
        assert BookingSource.EXTERNAL_VOICE_AGENT == "external-voice-agent"

    def test_import_availability_schema(self):
        from tourdesk.schemas.availability_schema import BlockKind, CalendarPreferences
        prefs = CalendarPreferences()
        assert prefs.working_days == [1, 2, 3, 4, 5]
        assert BlockKind.OFF_DAY == "off-day"

    def test_import_calendar_schema(self):
        from tourdesk.schemas.calendar_schema import Granularity, Projection
        assert Granularity.WEEK == "week"
        assert Projection is not None


class TestPackageImports:
    def test_import_backend_package(self):
        from tourdesk.backend import BookingBackendClient, CalendarFeed
        assert CalendarFeed().bookings == []
        assert BookingBackendClient is not None

    def test_import_lifecycle_package(self):
        from tourdesk.lifecycle import BookingAction, BookingLifecycleManager, BookingStateMachine
        assert BookingAction.CANCEL == "cancel"
        assert BookingLifecycleManager is not None
        assert BookingStateMachine().valid_actions is not None

    def test_import_reporting_package(self):
        from tourdesk.reporting import StatisticsCalculator, filter_bookings
        assert callable(filter_bookings)
        assert StatisticsCalculator().calculate([]).total == 0

    def test_import_calendar_modules(self):
        from tourdesk.calendar.aggregator import compute_events
        from tourdesk.calendar.preferences_store import PreferencesStore
        from tourdesk.calendar.projection import CalendarProjector, project
        assert callable(compute_events)
        assert callable(project)
        assert PreferencesStore is not None
        assert CalendarProjector is not None


class TestConfigImport:
    def test_import_config(self):
        from tourdesk.config import settings
        assert settings.backend.base_url.startswith("http")
        assert settings.calendar.default_slot_length in (15, 30, 45, 60)
        assert settings.cache.ttl_seconds >= 0


class TestCli:
    def test_main_imports(self):
        from main import format_projection, main
        assert callable(main)
        assert callable(format_projection)

    def test_format_projection(self):
        from datetime import date

        from main import format_projection
        from tests.conftest import make_booking, make_prefs
        from tourdesk.calendar.projection import project
        from tourdesk.schemas.calendar_schema import Granularity

        projection = project([make_booking(1)], make_prefs(), [], date(2025, 4, 9), Granularity.DAY)
        output = format_projection(projection)
        assert "DAY VIEW" in output
        assert "Wed 2025-04-09 10:00-10:30" in output
        assert "[pending] Jane Doe - 12 Elm Street" in output
        assert "Visible hours: 06:00-20:00" in output
