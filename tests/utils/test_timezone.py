"""Tests for utils/timezone.py - UTC-everywhere time handling."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from utils.timezone import (
    business_date_stamp, business_day_bounds, now_utc, to_utc, to_local, parse_iso,
)


class TestNowUtc:
    """Tests for now_utc()."""

    def test_returns_timezone_aware(self):
        """Result must have tzinfo set (not naive)."""
        result = now_utc()
        assert result.tzinfo is not None

    def test_is_utc(self):
        """Result timezone must be specifically UTC."""
        result = now_utc()
        assert result.tzinfo == timezone.utc


class TestToUtc:
    """Tests for to_utc()."""

    def test_raises_on_naive(self):
        """Naive datetime must raise ValueError."""
        naive = datetime(2024, 1, 1, 12, 0, 0)
        with pytest.raises(ValueError, match="naive"):
            to_utc(naive)

    def test_converts_other_timezone(self):
        """Chicago 12:00 in January should become UTC 18:00."""
        # Chicago is UTC-6 in January (no DST)
        chicago = datetime(2024, 1, 1, 12, 0, 0, tzinfo=ZoneInfo("America/Chicago"))
        result = to_utc(chicago)
        assert result.tzinfo == timezone.utc
        assert result.hour == 18

    def test_utc_passes_through(self):
        """UTC datetime should pass through unchanged."""
        utc_time = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        result = to_utc(utc_time)
        assert result.tzinfo == timezone.utc
        assert result.hour == 12


class TestToLocal:
    """Tests for to_local()."""

    def test_converts_correctly(self):
        """UTC 18:00 should become Chicago 12:00 in January."""
        utc_time = datetime(2024, 1, 1, 18, 0, 0, tzinfo=timezone.utc)
        result = to_local(utc_time, "America/Chicago")
        assert result.hour == 12

    def test_raises_on_naive(self):
        """Naive datetime must raise ValueError."""
        naive = datetime(2024, 1, 1, 12, 0, 0)
        with pytest.raises(ValueError, match="naive"):
            to_local(naive, "America/Chicago")

    def test_defaults_to_taipei(self):
        """Without a name the business timezone is used (UTC+8, no DST)."""
        utc_time = datetime(2024, 7, 1, 18, 0, 0, tzinfo=timezone.utc)
        result = to_local(utc_time)
        assert result.hour == 2
        assert result.day == 2

    def test_raises_on_invalid_timezone(self):
        """Invalid timezone name must raise ValueError."""
        utc_time = now_utc()
        with pytest.raises(ValueError, match="Unknown timezone"):
            to_local(utc_time, "Not/A/Timezone")


class TestParseIso:
    """Tests for parse_iso()."""

    def test_handles_zulu(self):
        """ISO string with Z suffix should parse to UTC."""
        result = parse_iso("2024-01-01T12:00:00Z")
        assert result.tzinfo == timezone.utc
        assert result.hour == 12

    def test_handles_offset(self):
        """ISO string with offset should convert to UTC."""
        # -06:00 offset means local time is 6 hours behind UTC
        # So 12:00-06:00 = 18:00 UTC
        result = parse_iso("2024-01-01T12:00:00-06:00")
        assert result.tzinfo == timezone.utc
        assert result.hour == 18

    def test_raises_on_naive(self):
        """ISO string without timezone must raise ValueError."""
        with pytest.raises(ValueError, match="timezone"):
            parse_iso("2024-01-01T12:00:00")

    def test_handles_positive_offset(self):
        """ISO string with positive offset should convert to UTC."""
        # +05:30 offset means local time is 5.5 hours ahead of UTC
        # So 12:00+05:30 = 06:30 UTC
        result = parse_iso("2024-01-01T12:00:00+05:30")
        assert result.tzinfo == timezone.utc
        assert result.hour == 6
        assert result.minute == 30


class TestBusinessDateStamp:
    """Tests for business_date_stamp()."""

    def test_same_day(self):
        """Morning UTC is the same calendar day in Taipei."""
        assert business_date_stamp(datetime(2025, 1, 31, 3, 0, tzinfo=timezone.utc)) == "20250131"

    def test_rolls_over_at_taipei_midnight(self):
        """16:00 UTC is midnight in Taipei, so the stamp moves to the next day."""
        assert business_date_stamp(datetime(2025, 1, 31, 15, 59, tzinfo=timezone.utc)) == "20250131"
        assert business_date_stamp(datetime(2025, 1, 31, 16, 0, tzinfo=timezone.utc)) == "20250201"


class TestBusinessDayBounds:
    """Tests for business_day_bounds()."""

    def test_taipei_day_in_utc(self):
        """A Taipei day runs 16:00 UTC to 16:00 UTC."""
        start, end = business_day_bounds(datetime(2025, 3, 10, 20, 0, tzinfo=timezone.utc))

        assert start == datetime(2025, 3, 10, 16, 0, tzinfo=timezone.utc)
        assert end == datetime(2025, 3, 11, 16, 0, tzinfo=timezone.utc)

    def test_bounds_are_utc(self):
        """Both bounds come back in UTC."""
        start, end = business_day_bounds(datetime(2025, 3, 10, 2, 0, tzinfo=timezone.utc))

        assert start.utcoffset().total_seconds() == 0
        assert end - start == timedelta(days=1)

    def test_naive_rejected(self):
        with pytest.raises(ValueError, match="naive"):
            business_day_bounds(datetime(2025, 3, 10))
